"""
Token set issued by the provider and its persistence in the tab's session store.
Expiry is kept as an absolute instant (issuance time + expires_in).
"""
import time
from dataclasses import dataclass
from typing import Any

from spa_client.session_store import (
    ACCESS_TOKEN_KEY,
    EXPIRES_AT_KEY,
    ID_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
    SCOPE_KEY,
    TOKEN_TYPE_KEY,
    SessionStore,
)

# Access token counts as expired this many seconds before expires_at
EXPIRY_BUFFER_SECONDS = 30

TOKEN_KEYS = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, ID_TOKEN_KEY, EXPIRES_AT_KEY, TOKEN_TYPE_KEY, SCOPE_KEY)


@dataclass
class TokenSet:
    access_token: str
    refresh_token: str | None
    expires_at: float
    token_type: str = "Bearer"
    scope: str = ""
    id_token: str | None = None

    @classmethod
    def from_response(
        cls,
        data: dict[str, Any],
        *,
        now: float | None = None,
        previous_refresh_token: str | None = None,
    ) -> "TokenSet":
        """
        Build from a token endpoint JSON body. expires_in is relative; it is anchored at `now`.
        A refresh response without refresh_token keeps the previous one.
        """
        issued_at = time.time() if now is None else now
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or previous_refresh_token,
            expires_at=issued_at + max(int(data.get("expires_in") or 0), 0),
            token_type=data.get("token_type") or "Bearer",
            scope=data.get("scope") or "",
            id_token=data.get("id_token") or None,
        )

    def is_expired(self, now: float | None = None, buffer_seconds: int = EXPIRY_BUFFER_SECONDS) -> bool:
        current = time.time() if now is None else now
        return current > self.expires_at - buffer_seconds


def store_tokens(store: SessionStore, tokens: TokenSet) -> None:
    """Write the token set, replacing whatever was stored before."""
    store.put(ACCESS_TOKEN_KEY, tokens.access_token)
    store.put(EXPIRES_AT_KEY, repr(tokens.expires_at))
    store.put(TOKEN_TYPE_KEY, tokens.token_type)
    store.put(SCOPE_KEY, tokens.scope)
    if tokens.refresh_token:
        store.put(REFRESH_TOKEN_KEY, tokens.refresh_token)
    else:
        store.remove(REFRESH_TOKEN_KEY)
    if tokens.id_token:
        store.put(ID_TOKEN_KEY, tokens.id_token)


def get_expires_at(store: SessionStore) -> float | None:
    raw = store.get(EXPIRES_AT_KEY)
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def get_tokens(store: SessionStore) -> TokenSet | None:
    access_token = store.get(ACCESS_TOKEN_KEY)
    expires_at = get_expires_at(store)
    if not access_token or expires_at is None:
        return None
    return TokenSet(
        access_token=access_token,
        refresh_token=store.get(REFRESH_TOKEN_KEY),
        expires_at=expires_at,
        token_type=store.get(TOKEN_TYPE_KEY) or "Bearer",
        scope=store.get(SCOPE_KEY) or "",
        id_token=store.get(ID_TOKEN_KEY),
    )


def clear_tokens(store: SessionStore) -> None:
    for key in TOKEN_KEYS:
        store.remove(key)
