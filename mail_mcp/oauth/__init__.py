"""Google OAuth support for Gmail accounts."""

from .google import GoogleAuthFlow, GoogleOAuthClient, generate_pkce_pair

__all__ = ["GoogleAuthFlow", "GoogleOAuthClient", "generate_pkce_pair"]
