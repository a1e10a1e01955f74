"""
The tab's current location and history, as seen by the auth core.
The HTTP layer loads the requested URL before each call and turns a recorded navigation into a redirect.
"""
from urllib.parse import parse_qs, urlsplit, urlunsplit


class BrowserLocation:
    """
    load(): the page the tab is showing now.
    assign(): full-page navigation away from the app (recorded, then taken by the HTTP layer).
    replace_state(): rewrite the visible URL without navigating.
    """

    def __init__(self, href: str = "http://127.0.0.1:8000/"):
        self.href = href
        self._navigation: str | None = None

    def load(self, href: str) -> None:
        self.href = href

    @property
    def origin(self) -> str:
        parts = urlsplit(self.href)
        return f"{parts.scheme}://{parts.netloc}"

    @property
    def pathname(self) -> str:
        return urlsplit(self.href).path or "/"

    def query_param(self, name: str) -> str | None:
        values = parse_qs(urlsplit(self.href).query, keep_blank_values=False).get(name)
        return values[0] if values else None

    def assign(self, url: str) -> None:
        self._navigation = url

    def replace_state(self, url: str) -> None:
        parts = urlsplit(self.href)
        target = urlsplit(url)
        if target.scheme:
            self.href = url
        else:
            self.href = urlunsplit((parts.scheme, parts.netloc, target.path, target.query, target.fragment))

    def take_navigation(self) -> str | None:
        """Pending navigation target, cleared once taken."""
        url, self._navigation = self._navigation, None
        return url
