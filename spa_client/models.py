"""
Authenticated identity returned by the userinfo endpoint, and the outcome of a completed callback.
"""
from dataclasses import dataclass, field
from typing import Any

from spa_client.token_store import TokenSet


@dataclass(frozen=True)
class UserProfile:
    sub: str
    preferred_username: str | None = None
    email: str | None = None
    email_verified: bool = False
    name: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    claims: dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "UserProfile":
        """Build from userinfo claims. Raises ValueError when sub is missing."""
        sub = claims.get("sub")
        if not sub:
            raise ValueError("userinfo response has no sub claim")
        return cls(
            sub=str(sub),
            preferred_username=claims.get("preferred_username"),
            email=claims.get("email"),
            email_verified=bool(claims.get("email_verified", False)),
            name=claims.get("name"),
            given_name=claims.get("given_name"),
            family_name=claims.get("family_name"),
            claims=dict(claims),
        )

    @property
    def display_name(self) -> str:
        return self.name or self.preferred_username or self.sub


@dataclass(frozen=True)
class CallbackResult:
    tokens: TokenSet
    user: UserProfile
