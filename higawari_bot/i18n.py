from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "en-US"
LOCALES_DIR = Path(__file__).resolve().parent / "locales"


def load_catalogue(locales_dir: Path, locale: str) -> Optional[Dict[str, str]]:
    path = locales_dir / f"{locale}.json"
    if not path.is_file():
        return None
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


class TextResolver:
    """Maps a text key plus parameters to display text, falling back to en-US."""

    def __init__(self, locale: str = DEFAULT_LOCALE, locales_dir: Optional[Path] = None):
        self.locales_dir = Path(locales_dir) if locales_dir else LOCALES_DIR
        self.fallback = load_catalogue(self.locales_dir, DEFAULT_LOCALE) or {}

        catalogue = None
        if locale != DEFAULT_LOCALE:
            catalogue = load_catalogue(self.locales_dir, locale)
            if catalogue is None:
                logger.warning("Unknown locale %s, using %s", locale, DEFAULT_LOCALE)
                locale = DEFAULT_LOCALE

        self.locale = locale
        self.catalogue = catalogue if catalogue is not None else self.fallback

    def __call__(self, key: str, **params: Any) -> str:
        template = self.catalogue.get(key)
        if template is None:
            template = self.fallback.get(key)
        if template is None:
            logger.warning("Missing text for key %s (%s)", key, self.locale)
            return key
        if not params:
            return template
        try:
            return template.format(**params)
        except (KeyError, IndexError, ValueError):
            logger.warning("Bad parameters for text %s: %s", key, sorted(params))
            return template
