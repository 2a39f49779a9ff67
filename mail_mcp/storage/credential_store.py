"""File-based account registry and credential storage.

Layout under the installation directory::

    <base_dir>/
        active-account.txt             # bare email of the active account
        accounts/
            accounts-registry.json     # email -> AccountInfo
            <email>.json               # one credential record per account (0600)

The registry is rewritten in full on every mutation. Concurrent writers are
last-writer-wins; each rewrite goes through a temporary file and an atomic
rename so readers never observe a half-written registry.
"""

import json
import logging
import os
import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

REGISTRY_FILENAME = "accounts-registry.json"
ACTIVE_ACCOUNT_FILENAME = "active-account.txt"

ProviderType = Literal["gmail", "imap"]


class AccountInfo(BaseModel):
    """Registry entry for one onboarded account."""

    email: str = Field(..., description="Primary email address (lowercase, unique key)")
    alias: str | None = Field(None, description="Optional human-readable alias")
    provider: ProviderType = Field(..., description="Backend serving this account")
    credentials_path: str = Field(..., description="Path to the persisted credential record")
    last_used: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="Last successful use"
    )
    scopes: list[str] = Field(default_factory=list, description="Granted OAuth scopes")


class OAuthTokens(BaseModel):
    """OAuth token bundle for REST-backed accounts."""

    access_token: str = Field(..., description="OAuth access token")
    refresh_token: str | None = Field(None, description="OAuth refresh token")
    token_type: str = Field(default="Bearer", description="Token type")
    expires_at: datetime | None = Field(None, description="Token expiration timestamp")
    scope: str | None = Field(None, description="Space-separated granted scopes")

    def is_expired(self) -> bool:
        """Check if token is expired."""
        if not self.expires_at:
            return False
        # Add 5-minute buffer to avoid race conditions
        return datetime.now(UTC) >= (self.expires_at - timedelta(minutes=5))

    def time_until_expiry(self) -> timedelta | None:
        """Get time until token expires."""
        if not self.expires_at:
            return None
        return self.expires_at - datetime.now(UTC)

    @classmethod
    def from_token_response(
        cls, response: dict[str, Any], previous: "OAuthTokens | None" = None
    ) -> "OAuthTokens":
        """Build a token bundle from an OAuth token endpoint response.

        Google omits the refresh token on refresh responses; the previous one
        is carried over in that case.
        """
        expires_at = None
        if "expires_in" in response:
            expires_at = datetime.now(UTC) + timedelta(seconds=int(response["expires_in"]))

        refresh_token = response.get("refresh_token")
        if not refresh_token and previous is not None:
            refresh_token = previous.refresh_token

        return cls(
            access_token=response["access_token"],
            refresh_token=refresh_token,
            token_type=response.get("token_type", "Bearer"),
            expires_at=expires_at,
            scope=response.get("scope") or (previous.scope if previous else None),
        )


class AppPasswordCredentials(BaseModel):
    """App-specific password credentials for IMAP/SMTP accounts."""

    email: str = Field(..., description="Login email address")
    app_password: str = Field(..., description="App-specific password")
    imap_host: str = Field(default="imap.mail.me.com", description="IMAP server host")
    imap_port: int = Field(default=993, description="IMAP server port")
    smtp_host: str = Field(default="smtp.mail.me.com", description="SMTP server host")
    smtp_port: int = Field(default=587, description="SMTP server port")


CredentialRecord = OAuthTokens | AppPasswordCredentials


class CredentialStore:
    """
    File-based storage for the account registry, credentials and active pointer.

    This implementation can be replaced with database or keychain storage by
    implementing the same interface.

    Security considerations:
    - Credential files are created with 0600 permissions
    - Credentials are stored as plain JSON; protect the directory accordingly
    """

    def __init__(self, base_dir: Path):
        """
        Initialize credential store.

        Args:
            base_dir: Installation directory holding all account state
        """
        self.base_dir = base_dir
        self.accounts_dir = base_dir / "accounts"
        self.registry_path = self.accounts_dir / REGISTRY_FILENAME
        self.active_path = base_dir / ACTIVE_ACCOUNT_FILENAME
        self.accounts_dir.mkdir(parents=True, exist_ok=True)

    # Registry

    def load_registry(self) -> dict[str, AccountInfo]:
        """Load the account registry, returning an empty mapping if absent."""
        if not self.registry_path.exists():
            return {}

        with open(self.registry_path, encoding="utf-8") as f:
            raw = json.load(f)

        registry = {email: AccountInfo(**entry) for email, entry in raw.items()}
        logger.debug(f"Loaded {len(registry)} accounts from registry")
        return registry

    def save_registry(self, registry: dict[str, AccountInfo]) -> None:
        """Rewrite the registry in full."""
        data = {email: info.model_dump(mode="json") for email, info in registry.items()}
        self._atomic_write(self.registry_path, json.dumps(data, indent=2).encode())
        logger.debug(f"Saved registry with {len(registry)} accounts")

    # Credentials

    def credentials_path_for(self, email: str) -> Path:
        """Get the credential file path for an account."""
        return self.accounts_dir / f"{email}.json"

    def read_credentials(self, path: Path | str) -> dict[str, Any] | None:
        """
        Read a credential record.

        Args:
            path: Credential file path taken from the registry entry

        Returns:
            The stored record, or None if the file does not exist
        """
        path = Path(path)
        if not path.exists():
            logger.debug(f"No credentials at {path}")
            return None

        with open(path, "rb") as f:
            return json.loads(f.read().decode())

    def write_credentials(self, email: str, data: dict[str, Any]) -> Path:
        """
        Write a credential record with owner-only permissions.

        Args:
            email: Account email the record belongs to
            data: JSON-serializable credential record

        Returns:
            Path the record was written to
        """
        path = self.credentials_path_for(email)
        payload = json.dumps(data, indent=2).encode()

        # Using os.open ensures permissions are set atomically during file creation
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(payload)
        os.chmod(path, 0o600)

        logger.info(f"Saved credentials for {email}")
        return path

    def delete_credentials(self, path: Path | str) -> None:
        """Delete a credential record if it exists."""
        path = Path(path)
        if path.exists():
            path.unlink()
            logger.info(f"Deleted credentials at {path.name}")

    # Active account pointer

    def read_active(self) -> str | None:
        """Read the active account email, or None if unset."""
        if not self.active_path.exists():
            return None
        value = self.active_path.read_text(encoding="utf-8").strip()
        return value or None

    def write_active(self, email: str) -> None:
        """Persist the active account pointer."""
        self._atomic_write(self.active_path, email.encode())

    def clear_active(self) -> None:
        """Remove the active account pointer."""
        if self.active_path.exists():
            self.active_path.unlink()

    def _atomic_write(self, path: Path, data: bytes) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
