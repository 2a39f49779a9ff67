"""Google OAuth 2.0 for Gmail accounts.

Authorization code flow with PKCE against a local redirect server, plus
refresh-token handling for the REST provider.
"""

import asyncio
import hashlib
import json
import logging
import secrets
import webbrowser
from base64 import urlsafe_b64encode
from pathlib import Path
from typing import Any
from urllib.parse import urlencode, urlparse

import httpx
from aiohttp import web

from ..core.config import Settings
from ..storage.credential_store import OAuthTokens
from ..utils.errors import AuthenticationError, ConfigurationError, MissingOAuthKeysError

logger = logging.getLogger(__name__)

DEFAULT_REDIRECT_URI = "http://localhost:3000/oauth2callback"
PROFILE_PATH = "/profile"
AUTHORIZATION_TIMEOUT = 300


def generate_pkce_pair() -> tuple[str, str]:
    """Generate PKCE code verifier and challenge.

    Returns:
        Tuple of (code_verifier, code_challenge)
    """
    code_verifier = urlsafe_b64encode(secrets.token_bytes(32)).decode("utf-8").rstrip("=")
    code_challenge = (
        urlsafe_b64encode(hashlib.sha256(code_verifier.encode("utf-8")).digest())
        .decode("utf-8")
        .rstrip("=")
    )
    return code_verifier, code_challenge


def _parse_oauth_error(response: httpx.Response) -> str:
    """Fold an RFC 6749 section 5.2 error body into a readable message."""
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if not isinstance(body, dict) or "error" not in body:
        return f"HTTP {response.status_code}"
    description = body.get("error_description")
    return f"{body['error']}: {description}" if description else str(body["error"])


class GoogleOAuthClient:
    """OAuth client built from a Google Cloud "installed" or "web" client keys file."""

    def __init__(
        self,
        client_id: str,
        client_secret: str | None,
        settings: Settings,
        redirect_uri: str = DEFAULT_REDIRECT_URI,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.settings = settings
        self.redirect_uri = redirect_uri

    @classmethod
    def from_keys_file(cls, path: Path, settings: Settings) -> "GoogleOAuthClient":
        """
        Load client credentials from a Google OAuth keys file.

        Raises:
            MissingOAuthKeysError: If the file does not exist
            ConfigurationError: If the file is not a usable keys file
        """
        if not path.exists():
            raise MissingOAuthKeysError(str(path))

        try:
            data = json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Could not read OAuth keys file {path}: {e}") from e

        keys = (data.get("installed") or data.get("web")) if isinstance(data, dict) else None
        if not isinstance(keys, dict) or not keys.get("client_id"):
            raise ConfigurationError(
                f"Invalid OAuth keys file format at {path}: expected an 'installed' or "
                "'web' block with a client_id"
            )

        # Installed-app keys usually list a bare "http://localhost"
        redirect_uris = keys.get("redirect_uris") or []
        redirect_uri = next(
            (
                uri
                for uri in redirect_uris
                if uri.startswith("http://localhost") and urlparse(uri).port
            ),
            DEFAULT_REDIRECT_URI,
        )
        return cls(keys["client_id"], keys.get("client_secret"), settings, redirect_uri)

    def get_authorization_url(self, state: str, code_challenge: str) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(self.settings.gmail_scopes),
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        return f"{self.settings.google_auth_url}?{urlencode(params)}"

    async def _token_request(self, data: dict[str, str], action: str) -> dict[str, Any]:
        data = {**data, "client_id": self.client_id}
        if self.client_secret:
            data["client_secret"] = self.client_secret

        async with httpx.AsyncClient(timeout=self.settings.http_timeout) as client:
            response = await client.post(
                self.settings.google_token_url,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )

        if response.status_code != 200:
            raise AuthenticationError(f"Failed to {action}: {_parse_oauth_error(response)}")
        return response.json()

    async def exchange_code(self, code: str, code_verifier: str) -> OAuthTokens:
        """Exchange an authorization code for tokens."""
        payload = await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
                "code_verifier": code_verifier,
            },
            "exchange authorization code",
        )
        return OAuthTokens.from_token_response(payload)

    async def refresh(self, tokens: OAuthTokens) -> OAuthTokens:
        """
        Refresh an access token.

        Raises:
            AuthenticationError: If there is no refresh token or Google rejects it
        """
        if not tokens.refresh_token:
            raise AuthenticationError(
                "Access token expired and no refresh token is stored. "
                "Re-run 'mail-mcp auth gmail'."
            )

        payload = await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": tokens.refresh_token},
            "refresh token",
        )
        logger.info("Refreshed Gmail access token")
        return OAuthTokens.from_token_response(payload, previous=tokens)

    async def fetch_profile_email(self, tokens: OAuthTokens) -> str:
        """Look up the authenticated user's email address."""
        async with httpx.AsyncClient(timeout=self.settings.http_timeout) as client:
            response = await client.get(
                f"{self.settings.gmail_api_base_url}{PROFILE_PATH}",
                headers={"Authorization": f"Bearer {tokens.access_token}"},
            )
            response.raise_for_status()
            return response.json()["emailAddress"]


class GoogleAuthFlow:
    """Interactive browser authorization for a Gmail account."""

    def __init__(self, client: GoogleOAuthClient, timeout: float = AUTHORIZATION_TIMEOUT):
        self.client = client
        self.timeout = timeout
        redirect = urlparse(client.redirect_uri)
        self.callback_host = redirect.hostname or "localhost"
        self.callback_port = redirect.port or 80
        self.callback_path = redirect.path or "/"

    async def authorize(self) -> OAuthTokens:
        """Run the authorization code flow to obtain tokens.

        This will:
        1. Open the browser at Google's consent screen
        2. Serve the redirect URI locally until the code arrives
        3. Exchange the code for tokens

        Raises:
            AuthenticationError: If authorization fails or times out
        """
        code_verifier, code_challenge = generate_pkce_pair()
        state = secrets.token_urlsafe(16)
        auth_url = self.client.get_authorization_url(state, code_challenge)

        logger.info("Starting Gmail authorization flow...")
        print(f"Opening browser for Google sign-in. If it does not open, visit:\n{auth_url}")
        webbrowser.open(auth_url)

        code = await self._run_callback_server(state)
        logger.info("Received authorization code, exchanging for tokens...")
        return await self.client.exchange_code(code, code_verifier)

    async def _run_callback_server(self, expected_state: str) -> str:
        auth_code: str | None = None
        error: str | None = None

        async def callback(request: web.Request) -> web.Response:
            nonlocal auth_code, error
            if request.query.get("state") != expected_state:
                error = "state mismatch"
                return web.Response(text="Invalid state parameter", status=400)
            if "code" in request.query:
                auth_code = request.query["code"]
                return web.Response(
                    text="<html><body><h1>Authentication successful</h1>"
                    "<p>You can close this window and return to the terminal.</p></body></html>",
                    content_type="text/html",
                )
            error = request.query.get("error", "Unknown error")
            return web.Response(text=f"Authorization failed: {error}", status=400)

        app = web.Application()
        app.router.add_get(self.callback_path, callback)
        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, self.callback_host, self.callback_port)
        await site.start()
        logger.info(f"Waiting for OAuth callback on {self.client.redirect_uri}")

        try:
            loop = asyncio.get_running_loop()
            deadline = loop.time() + self.timeout
            while auth_code is None and error is None:
                if loop.time() > deadline:
                    raise AuthenticationError("Authorization timed out after 5 minutes")
                await asyncio.sleep(0.1)
        finally:
            await runner.cleanup()

        if error or auth_code is None:
            raise AuthenticationError(f"Authorization failed: {error}")
        return auth_code
