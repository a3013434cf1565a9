from .base import Subscription, TransactionStore, UserScope
from .local_store import LocalTransactionStore
from .remote_store import FirebaseTransactionStore
from .session_store import SessionRecord, SessionStore

__all__ = [
    "TransactionStore",
    "Subscription",
    "UserScope",
    "LocalTransactionStore",
    "FirebaseTransactionStore",
    "SessionStore",
    "SessionRecord",
]
