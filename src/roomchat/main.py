#!/usr/bin/env python3
"""
Chat Client Application

Client application for joining chat rooms and following their messages
live. Provides a terminal-based user interface using the Textual framework.
"""

import logging
import sys

from .config import ClientConfig

logger = logging.getLogger(__name__)


def main():
    """Main entry point for the chat client."""
    config = ClientConfig.from_env()

    # Configure logging to file to avoid interfering with UI
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.FileHandler(config.log_file, mode="a")],
    )

    logger.info("Starting chat client against %s", config.api_base_url)

    from .ui import ChatApp

    try:
        app = ChatApp(config)
        app.run()
    except KeyboardInterrupt:
        print("\nExiting...")
        sys.exit(0)


if __name__ == "__main__":
    main()
