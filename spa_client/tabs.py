"""
Per-tab bundles (session store, location, auth service, session state) keyed by the tab cookie.
Tabs idle longer than the TTL are forgotten, together with everything their store held.
"""
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass, field

import httpx

from spa_client.auth_service import AuthService
from spa_client.config import TAB_IDLE_TTL, ProviderConfig
from spa_client.location import BrowserLocation
from spa_client.session import SessionStateMachine
from spa_client.session_store import InMemorySessionStore


@dataclass
class BrowserTab:
    tab_id: str
    store: InMemorySessionStore
    location: BrowserLocation
    auth: AuthService
    session: SessionStateMachine
    last_seen: float = field(default_factory=time.monotonic)

    def expired(self, ttl: int) -> bool:
        return (time.monotonic() - self.last_seen) > ttl


class TabRegistry:
    def __init__(
        self,
        config: ProviderConfig,
        http_client: httpx.AsyncClient,
        ttl: int = TAB_IDLE_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.http_client = http_client
        self.ttl = ttl
        self._clock = clock
        self._tabs: dict[str, BrowserTab] = {}

    def open_tab(self) -> BrowserTab:
        tab_id = secrets.token_urlsafe(32)
        store = InMemorySessionStore()
        location = BrowserLocation()
        auth = AuthService(self.config, store, location, self.http_client, clock=self._clock)
        tab = BrowserTab(
            tab_id=tab_id,
            store=store,
            location=location,
            auth=auth,
            session=SessionStateMachine(auth),
        )
        self._tabs[tab_id] = tab
        return tab

    def get_tab(self, tab_id: str | None) -> BrowserTab | None:
        """Tab for the id, or None if unknown or idle too long. Touches last_seen."""
        if not tab_id:
            return None
        tab = self._tabs.get(tab_id)
        if tab is None:
            return None
        if tab.expired(self.ttl):
            self.close_tab(tab_id)
            return None
        tab.last_seen = time.monotonic()
        return tab

    def get_or_open(self, tab_id: str | None) -> BrowserTab:
        self._clean_expired()
        return self.get_tab(tab_id) or self.open_tab()

    def close_tab(self, tab_id: str) -> None:
        tab = self._tabs.pop(tab_id, None)
        if tab is not None:
            tab.store.clear()

    def _clean_expired(self) -> None:
        expired = [tab_id for tab_id, tab in self._tabs.items() if tab.expired(self.ttl)]
        for tab_id in expired:
            self.close_tab(tab_id)

    def __len__(self) -> int:
        return len(self._tabs)
