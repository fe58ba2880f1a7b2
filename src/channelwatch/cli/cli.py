"""Command-line interface entry point for channelwatch.

Loads settings, configures logging and routes to the selected command.
"""

import logging

from ..config import AppSettings, Command
from ..exceptions import ChannelWatchError
from ..logging_config import setup_logging
from .commands import run_command
from .default import serve


async def main_cli() -> int:
    """Initialize and run channelwatch based on configuration.

    Returns:
        Process exit code: 0 on success, 1 if the command failed, 2 if it
        was misconfigured.
    """
    settings = AppSettings()  # type: ignore

    setup_logging(
        log_format_type=settings.log_format,
        app_log_level_name=settings.log_level,
        include_stacktrace=settings.log_include_stacktrace,
    )

    logger = logging.getLogger(__name__)
    logger.debug(
        "Application settings loaded.",
        extra={
            "config_file": str(settings.config_file),
            "command": str(settings.command),
            "data_dir": str(settings.data_dir),
        },
    )

    try:
        match settings.command:
            case Command.SERVE:
                await serve(settings)
            case _:
                await run_command(settings)
    except ValueError as e:
        logger.error("Invalid invocation.", exc_info=e)
        return 2
    except ChannelWatchError as e:
        logger.error("Command failed.", extra={"command": str(settings.command)}, exc_info=e)
        return 1

    logger.debug("main_cli execution finished.")
    return 0
