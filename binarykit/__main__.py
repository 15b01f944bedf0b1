"""
Entry point for running the binarykit CLI as a module.

Usage: python -m binarykit [command] [options]
"""

from binarykit.cli.parser import main

if __name__ == "__main__":
    main()
