"""
SPA client configuration. Identity provider location, client registration values, tab lifetime.
Public client: there is no client secret anywhere.
"""
import os
from dataclasses import dataclass

# Identity provider base URL; realm endpoints live under {ISSUER}/realms/{REALM}
ISSUER = os.environ.get("OAUTH_ISSUER", "http://127.0.0.1:8080").rstrip("/")

REALM = os.environ.get("OAUTH_REALM", "oneid")

# Our client_id (must be registered at the provider as a public client)
CLIENT_ID = os.environ.get("OAUTH_CLIENT_ID", "react-client")

DEFAULT_SCOPE = os.environ.get("OAUTH_SCOPE", "openid email profile")

# Must exactly match the redirect URI registered with the provider
REDIRECT_URI = os.environ.get("OAUTH_REDIRECT_URI", "http://127.0.0.1:8000/callback")

# Where the provider sends the browser after logout; unset means the application's origin
POST_LOGOUT_REDIRECT_URI = os.environ.get("OAUTH_POST_LOGOUT_REDIRECT_URI", "").strip() or None

# Seconds a tab may stay idle before its session store is forgotten
TAB_IDLE_TTL = int(os.environ.get("SPA_TAB_IDLE_TTL", "1800"))

LOG_LEVEL = os.environ.get("SPA_LOG_LEVEL", "INFO").upper()


@dataclass(frozen=True)
class ProviderConfig:
    """Values the auth core consumes as-is; endpoints follow the OpenID Connect realm layout."""

    issuer: str
    realm: str
    client_id: str
    redirect_uri: str
    scope: str = "openid email profile"
    post_logout_redirect_uri: str | None = None

    @classmethod
    def from_env(cls) -> "ProviderConfig":
        return cls(
            issuer=ISSUER,
            realm=REALM,
            client_id=CLIENT_ID,
            redirect_uri=REDIRECT_URI,
            scope=DEFAULT_SCOPE,
            post_logout_redirect_uri=POST_LOGOUT_REDIRECT_URI,
        )

    @property
    def realm_url(self) -> str:
        return f"{self.issuer.rstrip('/')}/realms/{self.realm}/protocol/openid-connect"

    @property
    def authorization_endpoint(self) -> str:
        return f"{self.realm_url}/auth"

    @property
    def token_endpoint(self) -> str:
        return f"{self.realm_url}/token"

    @property
    def userinfo_endpoint(self) -> str:
        return f"{self.realm_url}/userinfo"

    @property
    def revocation_endpoint(self) -> str:
        return f"{self.realm_url}/revoke"

    @property
    def end_session_endpoint(self) -> str:
        return f"{self.realm_url}/logout"
