"""OAuth endpoints for the Spotify login.

- /login: issue a one-time state and redirect to the Spotify authorize page
- /callback: check the state, exchange the code, then redirect or notify the opener

Services are read from ``request.app.state`` (set up by main.create_app).
"""

import logging
from urllib.parse import urlsplit

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from oauth.errors import AuthExchangeError, CsrfStateError
from oauth.templates import render_error, render_popup, render_success

logger = logging.getLogger(__name__)

# Router for OAuth endpoints
router = APIRouter(tags=["oauth"])

# Empty means "show the success page" instead of redirecting
DEFAULT_RETURN_TO = ""


def validate_return_to(return_to: str, allowed_origins: list[str]) -> str:
    """Accept site-relative paths, or absolute URLs on an allowed origin."""
    if not return_to:
        return DEFAULT_RETURN_TO
    parts = urlsplit(return_to)
    if not parts.scheme and not parts.netloc:
        # "//evil.example" and "/\evil.example" are protocol-relative in browsers
        if return_to.startswith("/") and not return_to.startswith(("//", "/\\")):
            return return_to
        raise CsrfStateError("returnTo must be a site-relative path")
    if parts.scheme not in ("http", "https"):
        raise CsrfStateError("returnTo must use http or https")
    origin = f"{parts.scheme}://{parts.netloc}"
    if origin not in allowed_origins:
        raise CsrfStateError(f"returnTo origin not allowed: {origin}")
    return return_to


def _failure(request: Request, message: str, status_code: int) -> HTMLResponse:
    settings = request.app.state.settings
    if settings.response_mode == "popup":
        page = render_popup(False, settings.popup_target_origin, error=message)
    else:
        page = render_error(message)
    return HTMLResponse(page, status_code=status_code)


@router.get("/login")
async def login(request: Request, returnTo: str = ""):
    """Redirect to the Spotify authorization page."""
    settings = request.app.state.settings
    try:
        return_to = validate_return_to(returnTo, settings.allowed_return_origins)
    except CsrfStateError as e:
        logger.warning(f"[AUTH] Rejected returnTo: {e.message}")
        return HTMLResponse(render_error(e.message), status_code=e.status_code)

    state = request.app.state.state_registry.create(return_to)
    auth_url = request.app.state.auth_flow.build_authorization_url(state)
    logger.info("[AUTH] Redirecting to Spotify login")
    return RedirectResponse(url=auth_url, status_code=302)


@router.get("/callback")
async def callback(request: Request, code: str = "", state: str = "", error: str = ""):
    """Handle the redirect back from Spotify."""
    settings = request.app.state.settings

    # Consume first so a rejected or failed callback can never be replayed
    return_to = request.app.state.state_registry.consume(state)
    if return_to is None:
        logger.warning("[AUTH] Callback with missing or invalid state")
        return _failure(request, "Missing or invalid state", CsrfStateError.status_code)

    if error:
        logger.warning(f"[AUTH] Authorization denied by provider: {error}")
        return _failure(request, f"Authorization failed: {error}", 400)

    if not code:
        return _failure(request, "Missing code", 400)

    try:
        await request.app.state.auth_flow.exchange_code(code)
    except AuthExchangeError as e:
        logger.error(f"[AUTH] Callback error: {e.body or e.message}")
        return _failure(request, "Authentication failed", e.status_code)

    logger.info("[AUTH] Login successful")
    if settings.response_mode == "popup":
        return HTMLResponse(render_popup(True, settings.popup_target_origin, return_to=return_to))
    if return_to:
        return RedirectResponse(url=return_to, status_code=302)
    return HTMLResponse(render_success())
