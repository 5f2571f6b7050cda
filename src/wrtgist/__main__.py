"""
Entry point for running wrtgist as a module.

Usage:
    python -m wrtgist [command] [options]

Useful on a router where the console script was not installed onto PATH.
"""

from wrtgist.cli import main

if __name__ == "__main__":
    main()
