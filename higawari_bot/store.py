from __future__ import annotations

import base64
import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import aiohttp

from .models import ENTRIES, PROGRESS

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
CONFLICT_RETRIES = 3

# =========================================================
# Backends: whole-document load/save
# =========================================================
class RemoteStoreError(RuntimeError):
    pass

class GitHubJSONStore:
    """JSON document kept in a GitHub repo via the Contents endpoint (SHA-safe)."""

    def __init__(self, repo: str, token: str, path: str):
        if not repo or not token or not path:
            raise RemoteStoreError("Missing GITHUB_REPO / GITHUB_TOKEN / HIGAWARI_DATA_PATH")
        self.repo = repo
        self.token = token
        self.path = path
        self.url = f"https://api.github.com/repos/{repo}/contents/{path}"

    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "higawari-bot",
        }

    async def load(self, session: Optional[aiohttp.ClientSession]) -> Tuple[Dict[str, Any], Optional[str]]:
        if session is None:
            raise RemoteStoreError("GitHub store needs an HTTP session")
        try:
            async with session.get(self.url, headers=self.headers()) as r:
                if r.status == 404:
                    return {}, None
                if r.status >= 400:
                    raise RemoteStoreError(f"GitHub GET failed ({r.status}): {await r.text()}")
                payload = await r.json()
        except aiohttp.ClientError as e:
            raise RemoteStoreError(f"GitHub GET failed: {e}") from e
        sha = payload.get("sha")
        content = payload.get("content") or ""
        if not content:
            return {}, sha
        raw = base64.b64decode(content.encode("utf-8"))
        return json.loads(raw.decode("utf-8")), sha

    async def save(self, session: Optional[aiohttp.ClientSession], data: Dict[str, Any], sha: Optional[str]) -> str:
        if session is None:
            raise RemoteStoreError("GitHub store needs an HTTP session")
        body: Dict[str, Any] = {
            "message": "higawari-bot: update data",
            "content": base64.b64encode(
                json.dumps(data, indent=2, ensure_ascii=False).encode("utf-8")
            ).decode("utf-8"),
        }
        if sha:
            body["sha"] = sha

        try:
            async with session.put(self.url, headers=self.headers(), json=body) as r:
                if r.status == 409:
                    raise RemoteStoreError("409_CONFLICT")
                if r.status >= 400:
                    raise RemoteStoreError(f"GitHub PUT failed ({r.status}): {await r.text()}")
                payload = await r.json()
        except aiohttp.ClientError as e:
            raise RemoteStoreError(f"GitHub PUT failed: {e}") from e
        return payload.get("content", {}).get("sha") or payload.get("sha") or sha or ""

class LocalJSONStore:
    """Same interface as GitHubJSONStore, backed by a file on disk."""

    def __init__(self, path: str):
        self.path = Path(path)

    async def load(self, session: Any = None) -> Tuple[Dict[str, Any], Optional[str]]:
        if not self.path.exists():
            return {}, None
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                return json.load(fh), None
        except (OSError, ValueError) as e:
            raise RemoteStoreError(f"Could not read {self.path}: {e}") from e

    async def save(self, session: Any, data: Dict[str, Any], sha: Optional[str]) -> str:
        directory = self.path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=".higawari-", suffix=".json", dir=str(directory))
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(data, fh, indent=2, ensure_ascii=False)
                os.replace(tmp, self.path)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
        except OSError as e:
            raise RemoteStoreError(f"Could not write {self.path}: {e}") from e
        return ""

# =========================================================
# Data model
# =========================================================
def default_data() -> Dict[str, Any]:
    return {
        "version": SCHEMA_VERSION,
        # singleton round state, None until the first start
        "state": None,
        # {round_id, participant_id, current_part, display_name}
        PROGRESS: [],
        # {round_id, participant_id, part, content, submitted_at, display_name, removed, message_refs}
        ENTRIES: [],
    }

def _matches(record: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    return all(record.get(k) == v for k, v in filters.items())

# =========================================================
# Record store: three families over one document
# =========================================================
class RecordStore:
    def __init__(self, backend, session: Optional[aiohttp.ClientSession] = None):
        self.backend = backend
        self.session = session
        self.data: Dict[str, Any] = default_data()
        self.sha: Optional[str] = None

    async def load(self):
        d, sha = await self.backend.load(self.session)
        base = default_data()
        for k, v in (d or {}).items():
            base[k] = v
        base.setdefault(PROGRESS, [])
        base.setdefault(ENTRIES, [])
        self.data, self.sha = base, sha
        logger.debug(
            "Loaded store: %d progress, %d entries",
            len(self.data[PROGRESS]), len(self.data[ENTRIES]),
        )

    async def _save(self, data: Dict[str, Any]):
        for _ in range(CONFLICT_RETRIES):
            try:
                self.sha = await self.backend.save(self.session, data, self.sha)
                return
            except RemoteStoreError as e:
                if str(e) != "409_CONFLICT":
                    raise
                # single writer: refresh the sha and write our document over it
                _, self.sha = await self.backend.load(self.session)
                logger.warning("Store conflict, re-saving over sha %s", self.sha)
        raise RemoteStoreError("Could not save after repeated conflicts.")

    async def _commit(self, mutate: Callable[[Dict[str, Any]], Any]) -> Any:
        # the in-memory document only changes once the write is durable
        draft = copy.deepcopy(self.data)
        result = mutate(draft)
        await self._save(draft)
        self.data = draft
        return result

    # ---------- round state ----------
    def get_state(self) -> Optional[Dict[str, Any]]:
        state = self.data.get("state")
        return dict(state) if state else None

    async def put_state(self, doc: Dict[str, Any]):
        def _apply(d):
            d["state"] = dict(doc)
        await self._commit(_apply)

    # ---------- record families ----------
    def find(self, family: str, **filters: Any) -> List[Dict[str, Any]]:
        return [dict(r) for r in self.data.get(family, []) if _matches(r, filters)]

    def find_one(self, family: str, **filters: Any) -> Optional[Dict[str, Any]]:
        for r in self.data.get(family, []):
            if _matches(r, filters):
                return dict(r)
        return None

    def distinct(self, family: str, field: str, **filters: Any) -> List[Any]:
        seen: List[Any] = []
        for r in self.data.get(family, []):
            if _matches(r, filters) and field in r and r[field] not in seen:
                seen.append(r[field])
        return seen

    async def upsert(self, family: str, key: Dict[str, Any], fields: Dict[str, Any]) -> Dict[str, Any]:
        """Insert-or-replace keyed by the natural composite key."""
        def _apply(d):
            records = d.setdefault(family, [])
            for r in records:
                if _matches(r, key):
                    r.update(fields)
                    return dict(r)
            record = dict(key)
            record.update(fields)
            records.append(record)
            return dict(record)
        return await self._commit(_apply)

    async def update_one(self, family: str, filters: Dict[str, Any], fields: Dict[str, Any]) -> bool:
        if self.find_one(family, **filters) is None:
            return False

        def _apply(d):
            for r in d.get(family, []):
                if _matches(r, filters):
                    r.update(fields)
                    return True
            return False
        return await self._commit(_apply)
