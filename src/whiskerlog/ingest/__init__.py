"""History source discovery and the import pass."""
