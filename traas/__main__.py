"""
Entry point for running traas as a module: python -m traas
"""

from .cli import main

if __name__ == '__main__':
    main()
