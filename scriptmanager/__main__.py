"""
Entry point for running as module: python -m scriptmanager
"""

import sys

from .cli import run_cli


def main():
    """Main entry point"""
    sys.exit(run_cli())


if __name__ == '__main__':
    main()
