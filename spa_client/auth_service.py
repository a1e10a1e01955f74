"""
Authorization Code + PKCE exchange with the identity provider for one tab.
Login redirect, callback handling (state check, code exchange, userinfo), refresh, session validation, logout.
All persistent state lives in the tab's session store; the service keeps only the callback latch.
"""
import asyncio
import logging
import secrets
import time
from collections.abc import Callable
from enum import Enum
from typing import Any
from urllib.parse import urlencode

import httpx

from spa_client.config import ProviderConfig
from spa_client.errors import (
    AuthError,
    CsrfMismatch,
    MalformedCallback,
    MissingVerifier,
    NoRefreshToken,
    ProviderCallError,
    ProviderDenied,
    RefreshInvalid,
    TokenExchangeFailed,
    UserInfoFailed,
)
from spa_client.location import BrowserLocation
from spa_client.models import CallbackResult, UserProfile
from spa_client.pkce import build_authorize_url, derive_challenge, generate_state, generate_verifier
from spa_client.session_store import (
    ACCESS_TOKEN_KEY,
    CODE_VERIFIER_KEY,
    ID_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
    STATE_KEY,
    SessionStore,
)
from spa_client.token_store import TokenSet, clear_tokens, get_tokens, store_tokens

logger = logging.getLogger(__name__)

CALLBACK_PARAMS = ("code", "state", "error", "error_description")


class CallbackPhase(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    DONE = "done"


class CallbackLatch:
    """
    One-shot guard for a callback delivery: Idle -> Processing -> Done.
    Invocations after the first join the same task instead of re-submitting the authorization code.
    """

    def __init__(self) -> None:
        self.phase = CallbackPhase.IDLE
        self.code: str | None = None
        self.task: asyncio.Future[CallbackResult] | None = None

    def matches(self, code: str | None, access_token: str | None) -> bool:
        """
        Join only a delivery still in flight, a failed one, or a completed one whose tokens
        are still the tab's tokens. A login since cleared by logout is never handed back.
        """
        if self.phase is CallbackPhase.IDLE or self.code != code:
            return False
        if self.phase is CallbackPhase.PROCESSING:
            return True
        if self.task.cancelled() or self.task.exception() is not None:
            return True
        return self.task.result().tokens.access_token == access_token

    def start(self, code: str | None, task: asyncio.Future[CallbackResult]) -> None:
        self.phase = CallbackPhase.PROCESSING
        self.code = code
        self.task = task
        task.add_done_callback(self._finish)

    def _finish(self, _task: asyncio.Future) -> None:
        self.phase = CallbackPhase.DONE


def describe_failure(error: AuthError) -> str:
    """Log-friendly description separating provider rejections from transport failures."""
    if isinstance(error, ProviderCallError):
        if error.rejected_by_provider:
            return f"{error.kind.value}: provider answered {error.status_code}"
        return f"{error.kind.value}: transport failure ({error})"
    return f"{error.kind.value}: {error}"


def _error_description(r: httpx.Response) -> str:
    """error_description (or error) from an OAuth error body; falls back to the HTTP reason."""
    err: dict[str, Any] = {}
    if r.headers.get("content-type", "").startswith("application/json"):
        try:
            body = r.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            err = body
    return str(err.get("error_description") or err.get("error") or r.reason_phrase or r.status_code)


class AuthService:
    def __init__(
        self,
        config: ProviderConfig,
        store: SessionStore,
        location: BrowserLocation,
        http_client: httpx.AsyncClient,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.store = store
        self.location = location
        self._http = http_client
        self._clock = clock
        self._callback = CallbackLatch()

    # --- Login ---

    def initiate_login(self) -> None:
        """
        Generate verifier, state and challenge; persist verifier and state; navigate to the provider.
        Starting a login discards any earlier in-flight attempt.
        """
        self._clear_pending_login()
        code_verifier = generate_verifier()
        state = generate_state()
        code_challenge = derive_challenge(code_verifier)

        self.store.put(CODE_VERIFIER_KEY, code_verifier)
        self.store.put(STATE_KEY, state)
        self._callback = CallbackLatch()

        url = build_authorize_url(
            authorization_endpoint=self.config.authorization_endpoint,
            client_id=self.config.client_id,
            redirect_uri=self.config.redirect_uri,
            scope=self.config.scope,
            state=state,
            code_challenge=code_challenge,
        )
        logger.info("Login initiated for client_id=%s", self.config.client_id)
        self.location.assign(url)

    async def handle_callback(self) -> CallbackResult:
        """
        Process the authorization response on the current location.
        A duplicate invocation for the same delivery awaits the first one; the code is exchanged once.
        """
        params = {name: self.location.query_param(name) for name in CALLBACK_PARAMS}
        pathname = self.location.pathname
        if self._callback.matches(params["code"], self.store.get(ACCESS_TOKEN_KEY)):
            logger.debug("Callback already %s; joining in-flight result", self._callback.phase.value)
            return await asyncio.shield(self._callback.task)

        latch = CallbackLatch()
        self._callback = latch
        latch.start(params["code"], asyncio.ensure_future(self._process_callback(params, pathname)))
        return await asyncio.shield(latch.task)

    async def _process_callback(self, params: dict[str, str | None], pathname: str) -> CallbackResult:
        error = params["error"]
        if error:
            logger.warning("Provider returned error on callback: %s", error)
            raise ProviderDenied(error, params["error_description"])

        code = params["code"]
        state = params["state"]
        if not code or not state:
            raise MalformedCallback("Missing authorization code or state parameter")

        stored_state = self.store.get(STATE_KEY)
        if stored_state is None or not secrets.compare_digest(stored_state.encode(), state.encode()):
            logger.warning("Callback state mismatch; possible CSRF, token exchange not attempted")
            raise CsrfMismatch("Invalid state parameter - possible CSRF attack")

        # Verifier and state are single-use from here on, whatever the outcome
        try:
            tokens = await self._exchange_code_for_tokens(code)
            user = await self.fetch_user_profile(tokens.access_token)
        finally:
            self._clear_pending_login()

        store_tokens(self.store, tokens)
        self.location.replace_state(pathname)
        logger.info("Login completed; access token valid for %ds", int(tokens.expires_at - self._clock()))
        return CallbackResult(tokens=tokens, user=user)

    async def _exchange_code_for_tokens(self, code: str) -> TokenSet:
        code_verifier = self.store.get(CODE_VERIFIER_KEY)
        if not code_verifier:
            raise MissingVerifier("Code verifier not found")

        try:
            r = await self._http.post(
                self.config.token_endpoint,
                data={
                    "grant_type": "authorization_code",
                    "client_id": self.config.client_id,
                    "code": code,
                    "redirect_uri": self.config.redirect_uri,
                    "code_verifier": code_verifier,
                },
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise TokenExchangeFailed(f"Token exchange request failed: {e}") from e

        if not r.is_success:
            description = _error_description(r)
            logger.warning("Token exchange rejected with %s: %s", r.status_code, description)
            raise TokenExchangeFailed(
                f"Token exchange failed: {description}", status_code=r.status_code, description=description
            )
        try:
            return TokenSet.from_response(r.json(), now=self._clock())
        except (ValueError, KeyError, TypeError) as e:
            raise TokenExchangeFailed(f"Invalid token response: {e}", status_code=r.status_code) from e

    # --- Profile and token lifecycle ---

    async def fetch_user_profile(self, access_token: str) -> UserProfile:
        try:
            r = await self._http.get(
                self.config.userinfo_endpoint,
                headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise UserInfoFailed(f"Userinfo request failed: {e}") from e

        if not r.is_success:
            raise UserInfoFailed(
                f"Failed to fetch user info: {r.reason_phrase or r.status_code}", status_code=r.status_code
            )
        try:
            return UserProfile.from_claims(r.json())
        except (ValueError, TypeError, AttributeError) as e:
            raise UserInfoFailed(f"Invalid userinfo response: {e}", status_code=r.status_code) from e

    async def refresh_token(self) -> TokenSet:
        """
        Exchange the stored refresh token for a new token set. Not retried: on any failure
        every stored token is cleared and the user has to log in again.
        """
        refresh_token = self.store.get(REFRESH_TOKEN_KEY)
        if not refresh_token:
            raise NoRefreshToken("No refresh token available")

        try:
            r = await self._http.post(
                self.config.token_endpoint,
                data={
                    "grant_type": "refresh_token",
                    "client_id": self.config.client_id,
                    "refresh_token": refresh_token,
                },
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            clear_tokens(self.store)
            logger.warning("Token refresh transport failure; tokens cleared: %s", e)
            raise RefreshInvalid(f"Token refresh request failed: {e}") from e

        if not r.is_success:
            clear_tokens(self.store)
            description = _error_description(r)
            logger.warning("Token refresh rejected with %s; tokens cleared", r.status_code)
            raise RefreshInvalid(
                "Refresh token is invalid", status_code=r.status_code, description=description
            )
        try:
            tokens = TokenSet.from_response(r.json(), now=self._clock(), previous_refresh_token=refresh_token)
        except (ValueError, KeyError, TypeError) as e:
            clear_tokens(self.store)
            raise RefreshInvalid(f"Invalid refresh response: {e}", status_code=r.status_code) from e

        store_tokens(self.store, tokens)
        logger.info("Access token refreshed")
        return tokens

    async def validate_session(self) -> bool:
        """True if the stored access token still works, or one refresh makes it work."""
        access_token = self.store.get(ACCESS_TOKEN_KEY)
        if not access_token:
            return False

        try:
            await self.fetch_user_profile(access_token)
            return True
        except UserInfoFailed as e:
            logger.info("Session check failed (%s); attempting one refresh", describe_failure(e))

        try:
            await self.refresh_token()
            return True
        except (RefreshInvalid, NoRefreshToken) as e:
            clear_tokens(self.store)
            logger.info("Session not recoverable (%s)", describe_failure(e))
            return False

    def is_expired(self) -> bool:
        """True when no expiry is stored or the access token is within the safety buffer of expiring."""
        tokens = get_tokens(self.store)
        return tokens is None or tokens.is_expired(now=self._clock())

    async def get_current_user(self) -> UserProfile | None:
        """Current profile, refreshing an expired token first. Degrades to None instead of raising."""
        if not self.store.get(ACCESS_TOKEN_KEY):
            return None

        if self.is_expired():
            try:
                await self.refresh_token()
            except AuthError as e:
                logger.warning("Failed to get current user: %s", describe_failure(e))
                return None

        access_token = self.store.get(ACCESS_TOKEN_KEY)
        if not access_token:
            return None
        try:
            return await self.fetch_user_profile(access_token)
        except UserInfoFailed as e:
            logger.warning("Failed to get current user: %s", describe_failure(e))
            return None

    # --- Logout ---

    async def logout(self) -> None:
        """
        Best-effort revoke of the refresh token, clear local tokens, then navigate to the provider
        logout endpoint with the ID token as hint.
        """
        refresh_token = self.store.get(REFRESH_TOKEN_KEY)
        id_token = self.store.get(ID_TOKEN_KEY)

        if refresh_token:
            try:
                r = await self._http.post(
                    self.config.revocation_endpoint,
                    data={
                        "client_id": self.config.client_id,
                        "refresh_token": refresh_token,
                        "token": refresh_token,
                        "token_type_hint": "refresh_token",
                    },
                )
                if not r.is_success:
                    logger.warning("Refresh token revoke answered %s", r.status_code)
            except httpx.HTTPError as e:
                logger.warning("Failed to revoke refresh token: %s", e)

        clear_tokens(self.store)
        self._callback = CallbackLatch()

        params = {}
        if id_token:
            params["id_token_hint"] = id_token
        params["post_logout_redirect_uri"] = self.config.post_logout_redirect_uri or self.location.origin
        logger.info("Local tokens cleared; redirecting to provider logout")
        self.location.assign(f"{self.config.end_session_endpoint}?{urlencode(params)}")

    def _clear_pending_login(self) -> None:
        self.store.remove(CODE_VERIFIER_KEY)
        self.store.remove(STATE_KEY)
