from __future__ import annotations

import asyncio
import json
import logging
import random
from typing import Any, AsyncIterator

import httpx
from pydantic import ValidationError

from ..errors import FeedError, WriteError
from ..ledger.models import NewTransaction, Transaction
from .base import ErrorCallback, SnapshotCallback, Subscription, UserScope, parse_documents

logger = logging.getLogger(__name__)

SERVER_TIMESTAMP = {".sv": "timestamp"}


def _sleep_seconds(attempt: int) -> float:
    base = min(20.0, 1.2 * (2**attempt))
    return base + random.random() * 0.8


def _is_retryable_status(status: int) -> bool:
    return status == 429 or 500 <= status <= 599


async def iter_sse(lines: AsyncIterator[str]) -> AsyncIterator[tuple[str, str]]:
    """Yields (event, data) pairs from a text/event-stream body."""
    event: str | None = None
    data_lines: list[str] = []

    async for line in lines:
        if line == "":
            if event is not None or data_lines:
                yield event or "message", "\n".join(data_lines)
            event = None
            data_lines = []
            continue

        if line.startswith(":"):
            continue

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            event = value
        elif name == "data":
            data_lines.append(value)

    if event is not None or data_lines:
        yield event or "message", "\n".join(data_lines)


def _set_path(root: dict[str, Any], parts: list[str], value: Any) -> None:
    cur = root
    for p in parts[:-1]:
        nxt = cur.get(p)
        if not isinstance(nxt, dict):
            if value is None:
                return
            nxt = {}
            cur[p] = nxt
        cur = nxt

    if value is None:
        cur.pop(parts[-1], None)
    else:
        cur[parts[-1]] = value


def apply_event(docs: dict[str, Any], event: str, path: str, data: Any) -> None:
    """
    Folds one put/patch event into the materialized collection so every
    delivery can hand out the full set.
    """
    parts = [p for p in (path or "").split("/") if p]

    if event == "put":
        if not parts:
            docs.clear()
            if isinstance(data, dict):
                docs.update(data)
            return
        _set_path(docs, parts, data)
        return

    if event == "patch" and isinstance(data, dict):
        for key, value in data.items():
            sub = [p for p in str(key).split("/") if p]
            if parts or sub:
                _set_path(docs, parts + sub, value)


class FirebaseTransactionStore:
    """
    Firebase Realtime Database over REST:

      <db>/apps/<app_id>/users/<uid>/transactions/<push id>

    Writes use server timestamps for createdAt. The feed uses the REST
    streaming endpoint and reconnects with backoff on transport errors.
    """

    RECONNECT_MAX_SECONDS = 30.0

    def __init__(
        self,
        database_url: str,
        app_id: str = "default-app-id",
        *,
        client: httpx.AsyncClient | None = None,
    ):
        self._base_url = database_url.rstrip("/")
        self._app_id = app_id
        self._client = client or httpx.AsyncClient(
            base_url=self._base_url,
            headers={"User-Agent": "finance-tracker/0.1.0"},
            timeout=httpx.Timeout(20.0),
        )
        self._tasks: set[asyncio.Task] = set()

    def _collection(self, scope: UserScope) -> str:
        return f"/apps/{self._app_id}/users/{scope.uid}/transactions"

    @staticmethod
    def _params(scope: UserScope) -> dict[str, str]:
        return {"auth": scope.id_token} if scope.id_token else {}

    async def append(self, scope: UserScope, tx: NewTransaction) -> Transaction:
        path = self._collection(scope)
        payload = {**tx.to_payload(), "createdAt": SERVER_TIMESTAMP}

        try:
            resp = await self._client.post(f"{path}.json", params=self._params(scope), json=payload)
            if resp.status_code >= 400:
                raise WriteError(
                    f"Firebase write error: {resp.status_code} {resp.reason_phrase}. Response: {resp.text}"
                )
            created = resp.json()
            if not isinstance(created, dict):
                raise WriteError(f"Firebase write response is not an object: {created!r}")
            doc_id = str(created.get("name", "")).strip()
            if not doc_id:
                raise WriteError("Firebase write response has no document id")

            # read back to get the resolved server timestamp
            resp = await self._client.get(f"{path}/{doc_id}.json", params=self._params(scope))
            if resp.status_code >= 400:
                raise WriteError(
                    f"Firebase read-back error: {resp.status_code} {resp.reason_phrase}. Response: {resp.text}"
                )
            doc = resp.json()
        except httpx.HTTPError as e:
            raise WriteError(f"Firebase write failed: {e}") from e
        except ValueError as e:
            raise WriteError(f"Firebase returned invalid JSON: {e}") from e

        if not isinstance(doc, dict):
            raise WriteError(f"Firebase read-back returned no document for id={doc_id}")

        try:
            stored = Transaction.model_validate({**doc, "id": doc_id})
        except ValidationError as e:
            raise WriteError(f"Stored document failed validation: {e}") from e

        logger.info("Stored transaction id=%s uid=%s", stored.id, scope.uid)
        return stored

    async def _stream_once(self, scope: UserScope, on_snapshot: SnapshotCallback) -> None:
        docs: dict[str, Any] = {}

        async with self._client.stream(
            "GET",
            f"{self._collection(scope)}.json",
            params=self._params(scope),
            headers={"Accept": "text/event-stream"},
            timeout=httpx.Timeout(20.0, read=None),
        ) as resp:
            if resp.status_code != 200:
                body = (await resp.aread()).decode("utf-8", errors="replace")
                raise FeedError(
                    f"Firebase feed error: {resp.status_code} {resp.reason_phrase}. Response: {body}",
                    retryable=_is_retryable_status(resp.status_code),
                )

            async for event, data in iter_sse(resp.aiter_lines()):
                if event == "keep-alive":
                    continue
                if event in ("cancel", "auth_revoked"):
                    raise FeedError(f"Firebase feed stopped: {event}", retryable=False)
                if event not in ("put", "patch"):
                    continue

                try:
                    payload = json.loads(data)
                except json.JSONDecodeError:
                    logger.warning("Skipping undecodable feed event: %s", data[:200])
                    continue
                if not isinstance(payload, dict):
                    continue

                apply_event(docs, event, str(payload.get("path", "/")), payload.get("data"))
                on_snapshot(parse_documents(docs))

    async def _run_feed(
        self,
        scope: UserScope,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> None:
        attempt = 0

        def _deliver(items: list[Transaction]) -> None:
            nonlocal attempt
            attempt = 0
            on_snapshot(items)

        while True:
            try:
                await self._stream_once(scope, _deliver)
                err = FeedError("Firebase feed closed by server")
            except FeedError as e:
                err = e
            except (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError) as e:
                err = FeedError(f"Firebase feed connection lost: {e}")
            except Exception as e:
                logger.exception("Live feed for uid=%s failed unexpectedly", scope.uid)
                err = FeedError(f"Firebase feed failed: {e}", retryable=False)

            on_error(err)
            if not err.retryable:
                logger.warning("Live feed stopped for uid=%s: %s", scope.uid, err)
                return

            delay = min(self.RECONNECT_MAX_SECONDS, _sleep_seconds(attempt))
            logger.warning("Live feed error for uid=%s, reconnecting in %.1fs: %s", scope.uid, delay, err)
            attempt += 1
            await asyncio.sleep(delay)

    def subscribe(
        self,
        scope: UserScope,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        task = asyncio.get_running_loop().create_task(self._run_feed(scope, on_snapshot, on_error))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return Subscription(task.cancel)

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self._client.aclose()
