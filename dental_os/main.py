"""Main entry point for DentalOS."""

import logging
import sys

from dental_os.config import get_settings


def setup_logging():
    """Configure logging based on settings."""
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    if not settings.database_echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def main():
    """Main entry point - runs CLI."""
    setup_logging()

    from dental_os.cli.commands import app

    app()


if __name__ == "__main__":
    main()
