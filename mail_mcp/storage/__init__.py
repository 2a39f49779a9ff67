"""Account registry and credential persistence."""

from .credential_store import (
    AccountInfo,
    AppPasswordCredentials,
    CredentialRecord,
    CredentialStore,
    OAuthTokens,
    ProviderType,
)

__all__ = [
    "AccountInfo",
    "AppPasswordCredentials",
    "CredentialRecord",
    "CredentialStore",
    "OAuthTokens",
    "ProviderType",
]
