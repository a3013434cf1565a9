from __future__ import annotations

from ..auth.identity import FirebaseIdentity, IdentityProvider, LocalIdentity
from ..config import Settings
from ..storage.base import TransactionStore
from ..storage.local_store import LocalTransactionStore
from ..storage.remote_store import FirebaseTransactionStore
from ..storage.session_store import SessionStore
from .session import TrackerSession


def build_store(settings: Settings) -> TransactionStore:
    if settings.store_backend == "firebase":
        return FirebaseTransactionStore(
            database_url=settings.firebase_database_url or "",
            app_id=settings.app_id,
        )
    return LocalTransactionStore(settings.ledger_dir)


def build_session_store(settings: Settings) -> SessionStore:
    return SessionStore(settings.sessions_dir, master_key=settings.master_key)


def build_identity(settings: Settings, sessions: SessionStore, session_key: str) -> IdentityProvider:
    if settings.store_backend == "firebase":
        return FirebaseIdentity(
            api_key=settings.firebase_api_key or "",
            sessions=sessions,
            session_key=session_key,
            custom_token=settings.firebase_auth_token,
        )
    return LocalIdentity(sessions, session_key, fixed_scope=settings.user_scope)


def build_session(
    settings: Settings,
    store: TransactionStore,
    sessions: SessionStore,
    session_key: str,
    **kwargs,
) -> TrackerSession:
    identity = build_identity(settings, sessions, session_key)
    return TrackerSession(store, identity, **kwargs)
