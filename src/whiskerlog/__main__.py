"""Allows running the CLI as a module:
    python -m whiskerlog
"""

from whiskerlog.cli import main

if __name__ == "__main__":
    main()
