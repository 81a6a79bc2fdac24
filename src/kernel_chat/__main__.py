"""
Main entry point for the Kernel Chat console.

Can be called with: python -m kernel_chat (or the kernel-chat script).

Settings are read from the environment; a .env file in the working directory
is loaded first.
"""

import asyncio
import logging
import sys

from dotenv import load_dotenv

from .app import run_chat
from .config import load_config
from .errors import ConfigurationError


def main() -> int:
    """Main entry point for the Kernel Chat console."""
    load_dotenv()
    try:
        config = load_config()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    # Logs go to stderr so they do not interleave with the chat on stdout
    logging.basicConfig(
        level=config.log_level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger(__name__).info("Starting chat session...")

    try:
        asyncio.run(run_chat(config))
    except KeyboardInterrupt:
        print(file=sys.stderr)
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
