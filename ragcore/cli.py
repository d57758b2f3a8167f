"""
CLI entry point for the document retrieval system.
"""

from .components.cli.commands import cli
from .utils.logging_config import setup_logger


def main():
    setup_logger("ragcore")
    cli()


if __name__ == '__main__':
    main()
