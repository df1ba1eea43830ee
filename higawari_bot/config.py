from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Mapping, Optional

# =========================================================
# ENV
# =========================================================
# HIGAWARI_TOKEN       bot token
# HIGAWARI_MOD_CH      moderation channel id (commands + review)
# HIGAWARI_CH_CH       public challenge channel id (announcements + results)
# HIGAWARI_LOCALE      e.g. "en-US"
# HIGAWARI_PREFIX      moderator command prefix, default ">"
# HIGAWARI_ENV         "production" turns debug logging off
# GITHUB_REPO          e.g. "someone/higawari-data"; with GITHUB_TOKEN selects the GitHub store
# GITHUB_TOKEN         PAT with repo contents access
# HIGAWARI_DATA_PATH   path of the JSON document (in the repo, or on disk)
# PORT                 keep-alive port
# HIGAWARI_KEEPALIVE   "0" disables the keep-alive server

DEFAULT_LOCALE = "en-US"
DEFAULT_PREFIX = ">"
DEFAULT_DATA_PATH = "higawari_data.json"
DEFAULT_PORT = 8080


class ConfigError(RuntimeError):
    pass


def _parse_int(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() not in ("0", "false", "no", "off")


@dataclass(frozen=True)
class Settings:
    token: Optional[str]
    moderation_channel_id: Optional[int]
    challenge_channel_id: Optional[int]
    locale: str = DEFAULT_LOCALE
    command_prefix: str = DEFAULT_PREFIX
    debug: bool = True
    github_repo: Optional[str] = None
    github_token: Optional[str] = None
    data_path: str = DEFAULT_DATA_PATH
    port: int = DEFAULT_PORT
    keepalive: bool = True

    @staticmethod
    def from_env(env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        port = _parse_int(env.get("PORT"))
        return Settings(
            token=env.get("HIGAWARI_TOKEN") or None,
            moderation_channel_id=_parse_int(env.get("HIGAWARI_MOD_CH")),
            challenge_channel_id=_parse_int(env.get("HIGAWARI_CH_CH")),
            locale=env.get("HIGAWARI_LOCALE") or DEFAULT_LOCALE,
            command_prefix=(env.get("HIGAWARI_PREFIX") or DEFAULT_PREFIX).strip() or DEFAULT_PREFIX,
            debug=(env.get("HIGAWARI_ENV") or "").strip().lower() != "production",
            github_repo=env.get("GITHUB_REPO") or None,
            github_token=env.get("GITHUB_TOKEN") or None,
            data_path=env.get("HIGAWARI_DATA_PATH") or DEFAULT_DATA_PATH,
            port=port if port and 0 < port < 65536 else DEFAULT_PORT,
            keepalive=_flag(env.get("HIGAWARI_KEEPALIVE"), True),
        )

    @property
    def use_github(self) -> bool:
        return bool(self.github_repo and self.github_token)

    def problems(self) -> List[str]:
        out = []
        if not self.token:
            out.append("HIGAWARI_TOKEN env var missing")
        if self.moderation_channel_id is None:
            out.append("HIGAWARI_MOD_CH must be a channel id")
        if self.challenge_channel_id is None:
            out.append("HIGAWARI_CH_CH must be a channel id")
        if (
            self.moderation_channel_id is not None
            and self.moderation_channel_id == self.challenge_channel_id
        ):
            out.append("HIGAWARI_MOD_CH and HIGAWARI_CH_CH must differ")
        if bool(self.github_repo) != bool(self.github_token):
            out.append("GITHUB_REPO and GITHUB_TOKEN must be set together")
        return out

    def validate(self) -> "Settings":
        problems = self.problems()
        if problems:
            raise ConfigError("; ".join(problems))
        return self
