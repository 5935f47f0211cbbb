"""Spotify Authorization Code flow.

Builds the authorize redirect and talks to the accounts token endpoint.
Client credentials always travel as HTTP Basic auth, never in the form body.
"""

import logging
from urllib.parse import urlencode

import httpx

from oauth.errors import AuthExchangeError, NoRefreshToken
from oauth.session import SessionState, TokenPair

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
TOKEN_URL = "https://accounts.spotify.com/api/token"


def _error_body(response: httpx.Response):
    """Upstream error payload: JSON when possible, else raw text."""
    try:
        return response.json()
    except ValueError:
        return response.text


class AuthFlow:
    """Authorization URL construction and token grants for one client."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        session: SessionState,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        scopes: str,
        show_dialog: bool = False,
    ):
        self.http = http
        self.session = session
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = scopes
        self.show_dialog = show_dialog

    @classmethod
    def from_settings(cls, settings, http: httpx.AsyncClient, session: SessionState) -> "AuthFlow":
        return cls(
            http,
            session,
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            redirect_uri=settings.redirect_uri,
            scopes=settings.scopes,
            show_dialog=settings.show_dialog,
        )

    def build_authorization_url(self, state: str) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "scope": self.scopes,
            "redirect_uri": self.redirect_uri,
            "state": state,
        }
        if self.show_dialog:
            params["show_dialog"] = "true"
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    async def _token_request(self, data: dict) -> dict:
        """POST a grant to the token endpoint, returning the parsed JSON body."""
        try:
            response = await self.http.post(
                TOKEN_URL,
                data=data,
                auth=(self.client_id, self.client_secret),
            )
        except httpx.HTTPError as e:
            raise AuthExchangeError(f"Token endpoint unreachable: {e}") from e

        if response.status_code // 100 != 2:
            body = _error_body(response)
            raise AuthExchangeError(
                f"Token endpoint returned {response.status_code}",
                status=response.status_code,
                body=body,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise AuthExchangeError("Token endpoint returned invalid JSON", status=response.status_code) from e

        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise AuthExchangeError(
                "Token response missing access_token",
                status=response.status_code,
                body=payload,
            )
        return payload

    async def exchange_code(self, code: str) -> TokenPair:
        """Trade an authorization code for a token pair and persist it."""
        if not code:
            raise AuthExchangeError("Missing authorization code")

        payload = await self._token_request({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
        })

        tokens = TokenPair(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token") or "",
        )
        if not tokens.refresh_token:
            logger.warning("[AUTH] Code exchange returned no refresh token")
        await self.session.update(tokens)
        logger.info(f"[AUTH] Authorization code exchanged (expires in {payload.get('expires_in', '?')}s)")
        return tokens

    async def refresh(self, current_refresh_token: str) -> TokenPair:
        """Get a new access token; keep the old refresh token unless a new one is issued."""
        if not current_refresh_token:
            logger.info("[AUTH] No refresh token available")
            raise NoRefreshToken()

        try:
            payload = await self._token_request({
                "grant_type": "refresh_token",
                "refresh_token": current_refresh_token,
            })
        except AuthExchangeError as e:
            logger.warning(f"[AUTH] Failed to refresh access token: {e.body or e.message}")
            raise

        new_refresh = payload.get("refresh_token")
        tokens = TokenPair(
            access_token=payload["access_token"],
            refresh_token=new_refresh or current_refresh_token,
        )
        if new_refresh and new_refresh != current_refresh_token:
            logger.info("[AUTH] Refresh token rotated")
        await self.session.update(tokens)
        logger.info("[AUTH] Access token refreshed")
        return tokens
