from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Protocol

from pydantic import ValidationError

from ..errors import FeedError
from ..ledger.models import NewTransaction, Transaction

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[list[Transaction]], None]
ErrorCallback = Callable[[FeedError], None]


@dataclass(frozen=True)
class UserScope:
    """Per-identity partition for every read and write."""

    uid: str
    id_token: str | None = None
    expires_at: float | None = None  # unix seconds, None = never


class Subscription:
    """
    Handle returned by subscribe(). Calling it (or cancel()) stops the feed;
    repeated calls are ignored.
    """

    def __init__(self, on_cancel: Callable[[], None]):
        self._on_cancel: Optional[Callable[[], None]] = on_cancel

    @property
    def active(self) -> bool:
        return self._on_cancel is not None

    def cancel(self) -> None:
        fn = self._on_cancel
        if fn is None:
            logger.debug("Subscription already cancelled")
            return
        self._on_cancel = None
        fn()

    def __call__(self) -> None:
        self.cancel()


class TransactionStore(Protocol):
    async def append(self, scope: UserScope, tx: NewTransaction) -> Transaction:
        """Persist tx and return it with id and createdAt. Raises WriteError."""
        ...

    def subscribe(
        self,
        scope: UserScope,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Subscription: ...

    async def aclose(self) -> None: ...


def order_snapshot(items: Iterable[Transaction]) -> list[Transaction]:
    # Newest first; id breaks ties so equal timestamps still give a stable list.
    return sorted(items, key=lambda t: (t.createdAt, t.id), reverse=True)


def parse_documents(docs: dict[str, Any]) -> list[Transaction]:
    """
    Turns {id: document} into ordered transactions. Documents that do not
    validate are skipped so a single bad record never blanks the whole list.
    """
    out: list[Transaction] = []
    for doc_id, doc in docs.items():
        if not isinstance(doc, dict):
            continue
        try:
            out.append(Transaction.model_validate({**doc, "id": str(doc_id)}))
        except ValidationError as e:
            logger.warning("Skipping malformed transaction id=%s: %s", doc_id, e.errors()[:1])
    return order_snapshot(out)
