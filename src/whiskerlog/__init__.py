"""Shell history analytics: import, classify and search command history."""

__version__ = "0.1.0"
