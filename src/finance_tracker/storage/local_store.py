from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from collections import defaultdict
from pathlib import Path
from typing import Any

from ..errors import FeedError, WriteError
from ..ledger.models import NewTransaction, Transaction
from .base import ErrorCallback, SnapshotCallback, Subscription, UserScope, parse_documents

logger = logging.getLogger(__name__)


class LocalTransactionStore:
    """
    Per-user transaction ledger stored as JSONL:

      .cache/ledger/<uid>/transactions.jsonl

    Each line is one stored transaction. Subscribers in this process get a
    fresh full snapshot after every append.
    """

    def __init__(self, root_dir: Path | None = None):
        self.root_dir = root_dir or (Path(".cache") / "ledger")
        self.root_dir.mkdir(parents=True, exist_ok=True)
        self._listeners: dict[str, list[tuple[SnapshotCallback, ErrorCallback]]] = defaultdict(list)
        self._last_created: dict[str, int] = {}

    def _user_dir(self, uid: str) -> Path:
        d = self.root_dir / uid
        d.mkdir(parents=True, exist_ok=True)
        return d

    def _path(self, uid: str) -> Path:
        return self._user_dir(uid) / "transactions.jsonl"

    def _load_raw(self, uid: str) -> dict[str, Any]:
        path = self._path(uid)
        docs: dict[str, Any] = {}
        if not path.exists():
            return docs
        for line in path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                obj = json.loads(line)
            except json.JSONDecodeError:
                logger.warning("Skipping corrupted ledger line for uid=%s", uid)
                continue
            tid = str(obj.get("id", "")).strip() if isinstance(obj, dict) else ""
            if tid:
                docs[tid] = obj
        return docs

    def load(self, scope: UserScope) -> list[Transaction]:
        return parse_documents(self._load_raw(scope.uid))

    def _next_created_at(self, uid: str) -> int:
        last = self._last_created.get(uid)
        if last is None:
            last = 0
            for obj in self._load_raw(uid).values():
                try:
                    last = max(last, int(obj.get("createdAt", 0)))
                except (TypeError, ValueError):
                    continue
        now_ms = int(time.time() * 1000)
        created = max(now_ms, last + 1)
        self._last_created[uid] = created
        return created

    def _write(self, uid: str, tx: NewTransaction) -> dict[str, Any]:
        doc = tx.to_payload()
        doc["id"] = uuid.uuid4().hex
        doc["createdAt"] = self._next_created_at(uid)

        path = self._path(uid)
        with path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(doc, ensure_ascii=False) + "\n")
        return doc

    async def append(self, scope: UserScope, tx: NewTransaction) -> Transaction:
        try:
            doc = await asyncio.to_thread(self._write, scope.uid, tx)
        except OSError as e:
            raise WriteError(f"Local ledger write failed: {e}") from e

        stored = Transaction.model_validate(doc)
        logger.info("Stored transaction id=%s uid=%s", stored.id, scope.uid)
        self._publish(scope.uid)
        return stored

    def _publish(self, uid: str) -> None:
        listeners = list(self._listeners.get(uid, []))
        if not listeners:
            return
        try:
            snapshot = parse_documents(self._load_raw(uid))
        except OSError as e:
            err = FeedError(f"Local ledger read failed: {e}")
            for _, on_error in listeners:
                on_error(err)
            return
        for on_snapshot, _ in listeners:
            on_snapshot(list(snapshot))

    def subscribe(
        self,
        scope: UserScope,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        entry = (on_snapshot, on_error)
        self._listeners[scope.uid].append(entry)

        def _cancel() -> None:
            listeners = self._listeners.get(scope.uid, [])
            if entry in listeners:
                listeners.remove(entry)

        try:
            on_snapshot(parse_documents(self._load_raw(scope.uid)))
        except OSError as e:
            on_error(FeedError(f"Local ledger read failed: {e}"))

        return Subscription(_cancel)

    def listener_count(self, scope: UserScope) -> int:
        return len(self._listeners.get(scope.uid, []))

    async def aclose(self) -> None:
        self._listeners.clear()
