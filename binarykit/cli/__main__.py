"""
Entry point for running the binarykit CLI as a module.

Usage: python -m binarykit.cli [command] [options]
"""

from .parser import main

if __name__ == "__main__":
    main()
