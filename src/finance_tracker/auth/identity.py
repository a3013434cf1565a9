from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Protocol

import httpx

from ..errors import IdentityError
from ..storage.base import UserScope
from ..storage.session_store import SessionStore

logger = logging.getLogger(__name__)


class IdentityProvider(Protocol):
    async def establish(self) -> UserScope:
        """Returns the scope for this session. Raises IdentityError."""
        ...

    async def aclose(self) -> None: ...


class LocalIdentity:
    """
    Scope for the local ledger: a fixed USER_SCOPE, or an id generated once
    and remembered in the session store.
    """

    def __init__(self, sessions: SessionStore, session_key: str, fixed_scope: str | None = None):
        self._sessions = sessions
        self._session_key = session_key
        self._fixed_scope = (fixed_scope or "").strip() or None

    async def establish(self) -> UserScope:
        if self._fixed_scope:
            return UserScope(uid=self._fixed_scope)

        try:
            rec = self._sessions.load(self._session_key)
            if rec is not None and rec.uid:
                return UserScope(uid=rec.uid)

            uid = uuid.uuid4().hex
            self._sessions.save(self._session_key, uid=uid)
        except (OSError, ValueError) as e:
            raise IdentityError(f"Could not persist local identity: {e}") from e

        logger.info("Created local identity uid=%s for session=%s", uid, self._session_key)
        return UserScope(uid=uid)

    async def aclose(self) -> None:
        return None


class FirebaseIdentity:
    """
    Firebase Auth over REST. Reuses a stored refresh token when there is
    one, otherwise signs in with the custom token, otherwise anonymously.
    """

    IDENTITY_URL = "https://identitytoolkit.googleapis.com/v1"
    TOKEN_URL = "https://securetoken.googleapis.com/v1/token"

    EXPIRY_MARGIN_SECONDS = 60

    def __init__(
        self,
        api_key: str,
        sessions: SessionStore,
        session_key: str,
        *,
        custom_token: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        if not api_key:
            raise IdentityError("FIREBASE_API_KEY is not set")
        self._api_key = api_key
        self._sessions = sessions
        self._session_key = session_key
        self._custom_token = custom_token
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(20.0))
        self._cached: UserScope | None = None

    def _fresh(self, scope: UserScope | None) -> bool:
        if scope is None:
            return False
        if scope.expires_at is None:
            return True
        return time.time() < scope.expires_at - self.EXPIRY_MARGIN_SECONDS

    async def _post(self, url: str, **kwargs: Any) -> dict[str, Any]:
        resp = await self._client.post(url, params={"key": self._api_key}, **kwargs)
        if resp.status_code >= 400:
            raise IdentityError(
                f"Firebase auth error: {resp.status_code} {resp.reason_phrase}. Response: {resp.text}"
            )
        data = resp.json()
        if not isinstance(data, dict):
            raise IdentityError("Firebase auth response is not an object")
        return data

    async def _refresh(self, refresh_token: str) -> tuple[str, str, str, int]:
        data = await self._post(
            self.TOKEN_URL,
            data={"grant_type": "refresh_token", "refresh_token": refresh_token},
        )
        return (
            str(data["user_id"]),
            str(data["id_token"]),
            str(data.get("refresh_token") or refresh_token),
            int(data.get("expires_in", 3600)),
        )

    async def _sign_in(self) -> tuple[str, str, str, int]:
        if self._custom_token:
            data = await self._post(
                f"{self.IDENTITY_URL}/accounts:signInWithCustomToken",
                json={"token": self._custom_token, "returnSecureToken": True},
            )
        else:
            data = await self._post(
                f"{self.IDENTITY_URL}/accounts:signUp",
                json={"returnSecureToken": True},
            )
        return (
            str(data["localId"]),
            str(data["idToken"]),
            str(data.get("refreshToken", "")),
            int(data.get("expiresIn", 3600)),
        )

    async def establish(self) -> UserScope:
        if self._fresh(self._cached):
            return self._cached

        try:
            rec = self._sessions.load(self._session_key)
        except (OSError, ValueError) as e:
            # unreadable record or unusable MASTER_KEY: sign in from scratch
            logger.warning("Could not read session %s: %s", self._session_key, e)
            rec = None

        creds: tuple[str, str, str, int] | None = None

        try:
            if rec is not None and rec.refresh_token:
                try:
                    creds = await self._refresh(rec.refresh_token)
                except (IdentityError, KeyError) as e:
                    logger.warning("Stored refresh token rejected, signing in again: %s", e)

            if creds is None:
                creds = await self._sign_in()
        except httpx.HTTPError as e:
            raise IdentityError(f"Firebase auth request failed: {e}") from e
        except (KeyError, ValueError) as e:
            raise IdentityError(f"Unexpected Firebase auth response: {e}") from e

        uid, id_token, refresh_token, expires_in = creds
        self._cached = UserScope(uid=uid, id_token=id_token, expires_at=time.time() + expires_in)

        try:
            self._sessions.save(self._session_key, uid=uid, refresh_token=refresh_token or None)
        except (OSError, ValueError) as e:
            logger.warning("Could not persist session %s: %s", self._session_key, e)

        logger.info("Signed in uid=%s session=%s", uid, self._session_key)
        return self._cached

    async def aclose(self) -> None:
        await self._client.aclose()
