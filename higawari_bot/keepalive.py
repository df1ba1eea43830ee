from __future__ import annotations

import logging
import threading
from typing import Callable

from flask import Flask, jsonify

from .models import RoundState

logger = logging.getLogger(__name__)

# =========================================================
# Flask keep-alive (Render)
# =========================================================
def create_app(state_provider: Callable[[], RoundState]) -> Flask:
    app = Flask("higawari-bot")

    @app.get("/")
    def home():
        return "Higawari bot is alive"

    @app.get("/status")
    def status():
        state = state_provider()
        return jsonify(state.to_doc())

    return app

def start_keepalive(app: Flask, port: int) -> threading.Thread:
    def _run_flask():
        app.run(host="0.0.0.0", port=port)

    t = threading.Thread(target=_run_flask, name="keepalive", daemon=True)
    t.start()
    logger.info("Keep-alive listening on port %d", port)
    return t
