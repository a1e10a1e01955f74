"""
SPA Client web app. Each browser tab (session cookie) gets its own auth session.
GET /, /login, /start-login, /callback, /dashboard, /refresh-user, /logout. Port 8000.
"""
import html
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response

from spa_client.config import LOG_LEVEL, ProviderConfig
from spa_client.errors import AuthError
from spa_client.tabs import BrowserTab, TabRegistry

router = APIRouter()

# Session cookie (no Max-Age): the browser drops it when the browsing session ends
TAB_COOKIE = "spa_tab"

# Seconds the callback error page stays before returning to /login
ERROR_REDIRECT_DELAY = 3


def _page(title: str, body: str, status_code: int = 200, head: str = "") -> HTMLResponse:
    return HTMLResponse(
        f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{html.escape(title)}</title>{head}</head>
<body>
{body}
</body>
</html>""",
        status_code=status_code,
    )


def _tab(request: Request) -> BrowserTab:
    """Tab for this request's cookie (new tab if none), with its location set to the requested URL."""
    tabs: TabRegistry = request.app.state.tabs
    tab = tabs.get_or_open(request.cookies.get(TAB_COOKIE))
    tab.location.load(str(request.url))
    return tab


def _respond(tab: BrowserTab, response: Response) -> Response:
    response.set_cookie(TAB_COOKIE, tab.tab_id, httponly=True, samesite="lax")
    return response


@router.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "spa_client"}


@router.get("/", response_class=HTMLResponse)
async def home(request: Request):
    """Home page; links depend on whether the tab is authenticated."""
    tab = _tab(request)
    state = await tab.session.activate()
    if state.is_authenticated:
        links = '<p><a href="/dashboard">Dashboard</a></p>\n  <p><a href="/logout">Log out</a></p>'
    else:
        links = '<p><a href="/login">Log in</a></p>'
    return _respond(tab, _page("OAuth PKCE Client", f"  <h1>OAuth2 + PKCE Client</h1>\n  {links}"))


@router.get("/login", response_class=HTMLResponse)
async def login_page(request: Request):
    """Login entry point. Already-authenticated tabs go straight to the dashboard."""
    tab = _tab(request)
    dismissed = tab.session.dismiss_error()
    state = await tab.session.activate()
    if state.is_authenticated:
        return _respond(tab, RedirectResponse(url="/dashboard", status_code=302))
    notice = f"\n  <p>Previous sign-in failed: {html.escape(str(dismissed))}</p>" if dismissed else ""
    return _respond(
        tab,
        _page("Log in", f'  <h1>Log in</h1>{notice}\n  <p><a href="/start-login">Log in with identity provider</a></p>'),
    )


@router.get("/start-login")
async def start_login(request: Request):
    """Generate PKCE parameters and state for this tab; redirect to the provider."""
    tab = _tab(request)
    tab.session.login()
    return _respond(tab, RedirectResponse(url=tab.location.take_navigation(), status_code=302))


@router.get("/callback", response_class=HTMLResponse)
async def callback(request: Request):
    """
    Handle the redirect from the provider. Success goes to /dashboard; failures show the
    message briefly and return to /login.
    """
    tab = _tab(request)
    try:
        await tab.session.handle_callback()
    except AuthError as e:
        return _respond(
            tab,
            _page(
                "Authentication failed",
                f"""  <h1>Authentication Failed</h1>
  <p>{html.escape(str(e))}</p>
  <p>Redirecting to login page...</p>""",
                status_code=400,
                head=f'<meta http-equiv="refresh" content="{ERROR_REDIRECT_DELAY};url=/login">',
            ),
        )
    return _respond(tab, RedirectResponse(url="/dashboard", status_code=302))


@router.get("/dashboard", response_class=HTMLResponse)
async def dashboard(request: Request):
    """Protected page: profile claims of the signed-in user."""
    tab = _tab(request)
    state = await tab.session.activate()
    if not state.is_authenticated or state.user is None:
        return _respond(tab, RedirectResponse(url="/login", status_code=302))

    user = state.user
    rows = "".join(
        f"<tr><td>{html.escape(str(k))}</td><td>{html.escape(str(v))}</td></tr>" for k, v in sorted(user.claims.items())
    )
    return _respond(
        tab,
        _page(
            "Dashboard",
            f"""  <h1>Welcome, {html.escape(user.display_name)}</h1>
  <table>{rows}</table>
  <p><a href="/refresh-user">Refresh profile</a> | <a href="/logout">Log out</a></p>""",
        ),
    )


@router.get("/refresh-user")
async def refresh_user(request: Request):
    tab = _tab(request)
    await tab.session.refresh_user()
    return _respond(tab, RedirectResponse(url="/dashboard", status_code=302))


@router.get("/logout")
async def logout(request: Request):
    """Revoke and clear this tab's tokens; redirect to the provider logout endpoint."""
    tab = _tab(request)
    await tab.session.logout()
    return _respond(tab, RedirectResponse(url=tab.location.take_navigation() or "/login", status_code=302))


def create_app(config: ProviderConfig | None = None, http_client: httpx.AsyncClient | None = None) -> FastAPI:
    """Build the app. Pass http_client to route provider calls through a custom transport."""
    provider_config = config or ProviderConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = http_client or httpx.AsyncClient(timeout=10.0)
        app.state.tabs = TabRegistry(provider_config, client)
        try:
            yield
        finally:
            if http_client is None:
                await client.aclose()

    app = FastAPI(title="SPA Client", version="0.1.0", lifespan=lifespan)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(
        "spa_client.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
