from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(debug: bool) -> None:
    """Route every logger through one stderr handler."""
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)

    # gateway/http chatter drowns everything else at DEBUG
    logging.getLogger("discord").setLevel(logging.INFO if debug else logging.WARNING)
    logging.getLogger("werkzeug").setLevel(logging.WARNING)
