from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Literal, Optional

from ..analytics.reports import MonthlyReport, build_reports
from ..auth.identity import IdentityProvider
from ..errors import FeedError, IdentityError, WriteError
from ..ledger.models import Transaction, TransactionDraft
from ..ledger.validate import Rejected, validate
from ..storage.base import Subscription, TransactionStore, UserScope

logger = logging.getLogger(__name__)


class SessionState(Enum):
    INITIALIZING = "initializing"
    AUTHENTICATING = "authenticating"
    READY = "ready"
    AUTH_FAILED = "auth_failed"


SubmitStatus = Literal["saved", "rejected", "busy", "failed", "not_ready", "empty"]


@dataclass(frozen=True)
class SubmitResult:
    status: SubmitStatus
    transaction: Transaction | None = None
    rejection: Rejected | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "saved"


class TrackerSession:
    """
    One user's view of the ledger: identity, the live snapshot with reports
    derived from it, and the add-transaction form state.

    Reports are rebuilt from the full snapshot on every delivery. A feed
    failure keeps the last good snapshot and only marks the session degraded.
    """

    def __init__(
        self,
        store: TransactionStore,
        identity: IdentityProvider,
        *,
        on_change: Optional[Callable[["TrackerSession"], None]] = None,
    ):
        self._store = store
        self._identity = identity
        self._on_change = on_change
        self._subscription: Subscription | None = None
        self._has_snapshot = asyncio.Event()

        self.state = SessionState.INITIALIZING
        self.scope: UserScope | None = None
        self.auth_error: IdentityError | None = None

        self.transactions: list[Transaction] = []
        self.reports: list[MonthlyReport] = []
        self.feed_error: FeedError | None = None

        self.draft: TransactionDraft | None = None
        self.saving = False
        self.last_write_error: WriteError | None = None

    @property
    def degraded(self) -> bool:
        return self.feed_error is not None

    @property
    def feed_stopped(self) -> bool:
        return self.feed_error is not None and not self.feed_error.retryable

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self)

    async def start(self) -> SessionState:
        if self.state == SessionState.READY:
            return self.state

        self.state = SessionState.AUTHENTICATING
        self._notify()

        try:
            scope = await self._identity.establish()
        except IdentityError as e:
            logger.error("Identity could not be established: %s", e)
            self.auth_error = e
            self.state = SessionState.AUTH_FAILED
            self._notify()
            return self.state

        self.auth_error = None
        self.state = SessionState.READY
        self._attach(scope)
        return self.state

    async def switch_identity(self, identity: IdentityProvider) -> SessionState:
        """Drops the current feed before anything from the new identity arrives."""
        self._detach()
        self._identity = identity
        self.state = SessionState.INITIALIZING
        self.scope = None
        return await self.start()

    async def resume(self) -> bool:
        """Re-subscribes after a feed that stopped for good (e.g. revoked auth)."""
        if self.state != SessionState.READY or not self.feed_stopped:
            return False
        try:
            scope = await self._identity.establish()
        except IdentityError as e:
            logger.warning("Could not refresh identity to resume feed: %s", e)
            return False
        self._attach(scope)
        return True

    def _attach(self, scope: UserScope) -> None:
        self._detach()
        self.scope = scope
        self.transactions = []
        self.reports = []
        self.feed_error = None
        self._has_snapshot.clear()
        self._subscription = self._store.subscribe(scope, self._on_snapshot, self._on_feed_error)
        self._notify()

    def _detach(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    def _on_snapshot(self, items: list[Transaction]) -> None:
        self.transactions = list(items)
        self.reports = build_reports(self.transactions)
        self.feed_error = None
        self._has_snapshot.set()
        self._notify()

    def _on_feed_error(self, err: FeedError) -> None:
        logger.warning("Live feed degraded: %s", err)
        self.feed_error = err
        self._notify()

    async def wait_for_snapshot(self, timeout: float | None = None) -> bool:
        try:
            await asyncio.wait_for(self._has_snapshot.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def _write_scope(self) -> UserScope | None:
        # Picks up a refreshed token; same uid keeps the existing feed.
        try:
            scope = await self._identity.establish()
        except IdentityError as e:
            logger.warning("Identity refresh failed, using current scope: %s", e)
            return self.scope

        if self.scope is not None and scope.uid != self.scope.uid:
            self._attach(scope)
        else:
            self.scope = scope
        return scope

    async def submit(self, draft: TransactionDraft) -> SubmitResult:
        if self.state != SessionState.READY or self.scope is None:
            return SubmitResult("not_ready", error=f"Session is {self.state.value}")

        if self.saving:
            return SubmitResult("busy", error="Another transaction is being saved")

        self.draft = draft
        outcome = validate(draft)
        if isinstance(outcome, Rejected):
            return SubmitResult("rejected", rejection=outcome, error=outcome.message)

        self.saving = True
        try:
            scope = await self._write_scope()
            stored = await self._store.append(scope, outcome.transaction)
        except WriteError as e:
            logger.warning("Write failed, draft kept for retry: %s", e)
            self.last_write_error = e
            return SubmitResult("failed", error=str(e))
        finally:
            self.saving = False

        self.draft = None
        self.last_write_error = None
        return SubmitResult("saved", transaction=stored)

    async def retry(self) -> SubmitResult:
        if self.draft is None:
            return SubmitResult("empty", error="Nothing to retry")
        return await self.submit(self.draft)

    def close(self) -> None:
        self._detach()

    async def aclose(self) -> None:
        self.close()
        await self._identity.aclose()
