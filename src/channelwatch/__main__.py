import asyncio
import contextlib
import sys

from .cli import main_cli


def main() -> None:
    """Entry point for the channelwatch CLI application."""
    with contextlib.suppress(KeyboardInterrupt):
        sys.exit(asyncio.run(main_cli()))


if __name__ == "__main__":
    main()
