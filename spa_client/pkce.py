"""
PKCE (RFC 7636) parameters and the authorization request URL.
S256 only. Verifier, challenge and anti-CSRF state generation.
"""
import hashlib
import secrets
from base64 import urlsafe_b64encode
from urllib.parse import urlencode

from spa_client.errors import RandomSourceUnavailable

# RFC 7636 unreserved characters
VERIFIER_CHARSET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"

DEFAULT_VERIFIER_LENGTH = 128

CHALLENGE_METHOD = "S256"


def _random_bytes(n: int) -> bytes:
    try:
        return secrets.token_bytes(n)
    except (NotImplementedError, OSError) as e:
        raise RandomSourceUnavailable(f"Secure random source unavailable: {e}") from e


def generate_verifier(length: int = DEFAULT_VERIFIER_LENGTH) -> str:
    """Each character drawn uniformly from the unreserved set by the secure random source."""
    if length < 1:
        raise ValueError("verifier length must be at least 1")
    try:
        return "".join(secrets.choice(VERIFIER_CHARSET) for _ in range(length))
    except (NotImplementedError, OSError) as e:
        raise RandomSourceUnavailable(f"Secure random source unavailable: {e}") from e


def derive_challenge(verifier: str) -> str:
    """BASE64URL(SHA256(verifier)) without padding."""
    digest = hashlib.sha256(verifier.encode("utf-8")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_state() -> str:
    """Opaque value for CSRF protection; 32 random bytes as 64 hex characters."""
    return _random_bytes(32).hex()


def build_authorize_url(
    *,
    authorization_endpoint: str,
    client_id: str,
    redirect_uri: str,
    scope: str,
    state: str,
    code_challenge: str,
) -> str:
    """Build the provider authorization URL with all required params."""
    params = {
        "client_id": client_id,
        "response_type": "code",
        "scope": scope,
        "redirect_uri": redirect_uri,
        "state": state,
        "code_challenge": code_challenge,
        "code_challenge_method": CHALLENGE_METHOD,
    }
    return f"{authorization_endpoint}?{urlencode(params)}"
