from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator

from ..security.crypto import decrypt_token, encrypt_token

logger = logging.getLogger(__name__)

_SAFE_KEY_RE = re.compile(r"[^A-Za-z0-9_.-]")

_KEEP = object()


@dataclass(frozen=True)
class SessionRecord:
    session_key: str
    uid: str | None
    refresh_token: str | None
    chat_id: int | None
    autoreports_enabled: bool
    updated_at: float  # unix timestamp


class SessionStore:
    """
    Local disk store for per-session identity data (uid, refresh token,
    chat_id, autoreports_enabled).
    Stored under .cache/sessions/<session_key>.json

    The refresh token is Fernet-encrypted with MASTER_KEY and is not written
    at all when no key is configured.
    """

    def __init__(self, root_dir: Path | None = None, master_key: str | None = None):
        self.root_dir = root_dir or (Path(".cache") / "sessions")
        self.root_dir.mkdir(parents=True, exist_ok=True)
        self._master_key = master_key

    def _path(self, session_key: str) -> Path:
        safe = _SAFE_KEY_RE.sub("_", session_key)
        return self.root_dir / f"{safe}.json"

    def save(
        self,
        session_key: str,
        *,
        uid: Any = _KEEP,
        refresh_token: Any = _KEEP,
        chat_id: Any = _KEEP,
        autoreports_enabled: Any = _KEEP,
    ) -> Path:
        existing = self.load_raw(session_key)

        token_enc = existing.get("refresh_token", "")
        if refresh_token is not _KEEP:
            if refresh_token and self._master_key:
                token_enc = encrypt_token(refresh_token, self._master_key)
            else:
                token_enc = ""

        payload: dict[str, Any] = {
            "session_key": session_key,
            "uid": existing.get("uid") if uid is _KEEP else uid,
            "refresh_token": token_enc,
            "chat_id": existing.get("chat_id") if chat_id is _KEEP else chat_id,
            "autoreports_enabled": (
                bool(existing.get("autoreports_enabled", False))
                if autoreports_enabled is _KEEP
                else bool(autoreports_enabled)
            ),
            "updated_at": time.time(),
        }

        path = self._path(session_key)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(path)
        return path

    def load_raw(self, session_key: str) -> dict[str, Any]:
        path = self._path(session_key)
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Unreadable session file %s: %s", path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def load(self, session_key: str) -> SessionRecord | None:
        data = self.load_raw(session_key)
        if not data:
            return None

        token_enc = str(data.get("refresh_token") or "")
        token_plain: str | None = None
        if token_enc and self._master_key:
            token_plain = decrypt_token(token_enc, self._master_key)

        chat_id = data.get("chat_id")
        return SessionRecord(
            session_key=str(data.get("session_key", session_key)),
            uid=(str(data["uid"]) if data.get("uid") else None),
            refresh_token=token_plain,
            chat_id=(int(chat_id) if chat_id is not None else None),
            autoreports_enabled=bool(data.get("autoreports_enabled", False)),
            updated_at=float(data.get("updated_at", 0.0)),
        )

    def iter_all(self) -> Iterator[SessionRecord]:
        for p in sorted(self.root_dir.glob("*.json")):
            rec = self.load(p.stem)
            if rec is not None:
                yield rec
