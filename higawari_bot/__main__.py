from __future__ import annotations

import logging
import sys

from .bot import HigawariBot
from .config import ConfigError, Settings
from .keepalive import create_app, start_keepalive
from .logs import configure_logging

logger = logging.getLogger("higawari_bot")


def main() -> int:
    settings = Settings.from_env()
    configure_logging(settings.debug)

    try:
        settings.validate()
    except ConfigError as e:
        logger.error("Bad configuration: %s", e)
        return 1

    bot = HigawariBot(settings)
    if settings.keepalive:
        start_keepalive(create_app(lambda: bot.machine.state), settings.port)

    try:
        bot.run(settings.token, log_handler=None)
    except Exception:
        logger.exception("Bot stopped with an unrecoverable error")
        return 1
    return 1 if bot.crashed else 0


if __name__ == "__main__":
    sys.exit(main())
