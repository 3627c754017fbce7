"""
Entry point for podmanager.

Sets up file logging (the terminal belongs to the UI) and starts the Textual
application.
"""

import logging

from . import get_log_path
from .config import config_manager


def setup_logging() -> str:
    log_path = config_manager.get_custom_log_path() or get_log_path()
    level = getattr(logging, config_manager.get_log_level(), logging.INFO)
    logging.basicConfig(filename=log_path, level=level,
                        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    return log_path


def main() -> None:
    log_path = setup_logging()
    logging.getLogger(__name__).info(f"Starting podmanager, logging to {log_path}")

    from .textual_app import run
    run()


if __name__ == "__main__":
    main()
