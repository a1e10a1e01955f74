"""
Per-tab key/value storage for PKCE parameters and tokens.
Entries live as long as the tab does; there is no expiry logic here (token expiry is tracked by the token set).
"""
from typing import Protocol

# Keys written by the auth core
CODE_VERIFIER_KEY = "code_verifier"
STATE_KEY = "oauth_state"
ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"
ID_TOKEN_KEY = "id_token"
EXPIRES_AT_KEY = "token_expires_at"
TOKEN_TYPE_KEY = "token_type"
SCOPE_KEY = "token_scope"


class SessionStore(Protocol):
    def put(self, key: str, value: str) -> None: ...

    def get(self, key: str) -> str | None: ...

    def remove(self, key: str) -> None: ...

    def clear(self) -> None: ...


class InMemorySessionStore:
    """Dict-backed store. One instance per tab; get on a missing key returns None."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def put(self, key: str, value: str) -> None:
        self._items[key] = value

    def get(self, key: str) -> str | None:
        return self._items.get(key)

    def remove(self, key: str) -> None:
        self._items.pop(key, None)

    def clear(self) -> None:
        self._items.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)
