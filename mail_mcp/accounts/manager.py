"""Multi-account registry, alias resolution and credential retrieval.

The manager owns the in-memory registry and the active-account pointer, and is
the only component that writes them. Every mutation is persisted through the
CredentialStore before the method returns. Methods are synchronous, so within
one event loop no two operations interleave on registry state.
"""

import logging
from datetime import UTC, datetime

from ..core.config import DEFAULT_GMAIL_SCOPES
from ..storage.credential_store import (
    AccountInfo,
    AppPasswordCredentials,
    CredentialRecord,
    CredentialStore,
    OAuthTokens,
    ProviderType,
)
from ..utils.errors import (
    AccountNotFoundError,
    AliasCollisionError,
    AmbiguousAccountError,
    CredentialsNotFoundError,
)

logger = logging.getLogger(__name__)

NO_ACCOUNTS_MESSAGE = (
    "No accounts authenticated. Run 'mail-mcp auth gmail' or 'mail-mcp auth imap' "
    "to add an account."
)


class AccountManager:
    """Manages onboarded mail accounts and which one is active."""

    def __init__(self, store: CredentialStore):
        """
        Initialize the account manager.

        Args:
            store: Credential store holding the registry and credential records
        """
        self.store = store
        self._registry: dict[str, AccountInfo] = store.load_registry()

    # Resolution

    def resolve_account(self, identifier: str | None = None) -> str:
        """
        Resolve an email or alias to a canonical account email.

        An unknown identifier is returned unchanged so that the failure surfaces
        at lookup time with the identifier as given.

        Args:
            identifier: Email or alias; None means "the active account"

        Returns:
            Canonical email address

        Raises:
            AmbiguousAccountError: If no identifier is given and no account can be
                chosen implicitly
        """
        if identifier:
            return self._resolve_identifier(identifier)

        active = self.store.read_active()
        if active:
            return active

        accounts = self.list_accounts()
        if not accounts:
            raise AmbiguousAccountError(NO_ACCOUNTS_MESSAGE)
        if len(accounts) == 1:
            email = accounts[0].email
            logger.info(f"Auto-activating the only registered account: {email}")
            self.set_active_account(email)
            return email

        raise AmbiguousAccountError(
            "No active account. Use switch_account tool or specify account parameter. "
            f"Available accounts: {', '.join(self._available_identifiers())}"
        )

    def _resolve_identifier(self, identifier: str) -> str:
        if identifier in self._registry:
            return identifier

        for email, info in self._registry.items():
            if info.alias == identifier:
                return email

        # Emails are stored lowercase
        lowered = identifier.lower()
        if lowered in self._registry:
            return lowered

        return identifier

    def _available_identifiers(self) -> list[str]:
        return [info.alias or info.email for info in self.list_accounts()]

    # Lookup

    def get_account(self, identifier: str | None = None) -> AccountInfo | None:
        """Get the registry entry for an account, or None if it is not registered."""
        try:
            email = self.resolve_account(identifier)
        except AmbiguousAccountError:
            return None
        return self._registry.get(email)

    def has_account(self, identifier: str) -> bool:
        """Check if an account exists."""
        return self._resolve_identifier(identifier) in self._registry

    def get_credentials(self, identifier: str | None = None) -> CredentialRecord:
        """
        Load the credential record for an account.

        Refreshes the account's last-used timestamp as a side effect.

        Args:
            identifier: Email or alias; None means "the active account"

        Returns:
            OAuthTokens for Gmail accounts, AppPasswordCredentials for IMAP accounts

        Raises:
            AmbiguousAccountError: If no account can be chosen implicitly
            AccountNotFoundError: If the account or its credential record is missing
        """
        email = self.resolve_account(identifier)
        info = self._registry.get(email)
        if info is None:
            raise AccountNotFoundError(identifier or email, self._available_identifiers())

        data = self.store.read_credentials(info.credentials_path)
        if data is None:
            raise CredentialsNotFoundError(email, self._available_identifiers())

        info.last_used = datetime.now(UTC)
        self.store.save_registry(self._registry)

        if info.provider == "gmail":
            return OAuthTokens(**data)
        return AppPasswordCredentials(**data)

    def get_active_account(self) -> str | None:
        """Get the active account email, if one is set."""
        return self.store.read_active()

    def list_accounts(self) -> list[AccountInfo]:
        """List all registered accounts, most recently used first."""
        return sorted(self._registry.values(), key=lambda a: a.last_used, reverse=True)

    # Mutation

    def add_account(
        self,
        email: str,
        provider: ProviderType,
        credentials: CredentialRecord,
        alias: str | None = None,
        scopes: list[str] | None = None,
    ) -> AccountInfo:
        """
        Register an account and persist its credentials.

        An existing entry for the same email is overwritten. The first
        registered account becomes the active one.

        Args:
            email: Account email address
            provider: "gmail" or "imap"
            credentials: Credential record to persist
            alias: Optional unique alias
            scopes: Granted OAuth scopes (Gmail only)

        Returns:
            The new registry entry

        Raises:
            AliasCollisionError: If the alias is already taken, or the email is
                another account's alias
        """
        email = email.lower()
        existing = self._registry.get(email)
        # Re-authenticating without an alias keeps the one already assigned
        alias = alias or (existing.alias if existing else None)
        self._ensure_email_not_aliased(email)
        if alias:
            self._ensure_alias_available(alias, email)

        if scopes is None and provider == "gmail":
            scopes = list(DEFAULT_GMAIL_SCOPES)

        credentials_path = self.store.write_credentials(
            email, credentials.model_dump(mode="json")
        )
        info = AccountInfo(
            email=email,
            alias=alias,
            provider=provider,
            credentials_path=str(credentials_path),
            last_used=datetime.now(UTC),
            scopes=scopes or [],
        )
        self._registry[email] = info
        self.store.save_registry(self._registry)
        logger.info(f"Added {provider} account: {email}")

        if len(self._registry) == 1:
            self.set_active_account(email)

        return info

    def update_credentials(self, identifier: str, credentials: CredentialRecord) -> None:
        """Replace an account's stored credentials (e.g. after a token refresh)."""
        email = self._resolve_identifier(identifier)
        info = self._require(identifier, email)
        self.store.write_credentials(email, credentials.model_dump(mode="json"))
        info.credentials_path = str(self.store.credentials_path_for(email))
        self.store.save_registry(self._registry)

    def remove_account(self, identifier: str) -> AccountInfo:
        """
        Remove an account and its credentials.

        Clears the active pointer if it referenced this account.

        Raises:
            AccountNotFoundError: If the account is not registered
        """
        email = self._resolve_identifier(identifier)
        info = self._require(identifier, email)

        self.store.delete_credentials(info.credentials_path)
        del self._registry[email]
        self.store.save_registry(self._registry)

        if self.store.read_active() == email:
            self.store.clear_active()

        logger.info(f"Removed account: {email}")
        return info

    def set_alias(self, identifier: str, alias: str) -> AccountInfo:
        """
        Assign an alias to an account.

        Raises:
            AccountNotFoundError: If the account is not registered
            AliasCollisionError: If the alias is already taken
        """
        email = self._resolve_identifier(identifier)
        info = self._require(identifier, email)
        alias = alias or None
        if alias:
            self._ensure_alias_available(alias, email)

        info.alias = alias
        self.store.save_registry(self._registry)
        logger.info(f"Set alias for {email}: {alias}")
        return info

    def set_active_account(self, identifier: str) -> AccountInfo:
        """
        Make an account the active one and refresh its last-used timestamp.

        Raises:
            AccountNotFoundError: If the account is not registered
        """
        email = self._resolve_identifier(identifier)
        info = self._require(identifier, email)

        self.store.write_active(email)
        info.last_used = datetime.now(UTC)
        self.store.save_registry(self._registry)
        logger.info(f"Active account: {email}")
        return info

    def _require(self, identifier: str, email: str) -> AccountInfo:
        info = self._registry.get(email)
        if info is None:
            raise AccountNotFoundError(identifier, self._available_identifiers())
        return info

    def _ensure_email_not_aliased(self, email: str) -> None:
        """Reject an email that is already another account's alias."""
        for other_email, other in self._registry.items():
            if other_email != email and other.alias and other.alias.lower() == email:
                raise AliasCollisionError(
                    f"Email '{email}' is already in use as an alias for {other_email}"
                )

    def _ensure_alias_available(self, alias: str, email: str) -> None:
        """Reject aliases that equal another account's email or alias."""
        for other_email, other in self._registry.items():
            if other_email == email:
                continue
            if other_email == alias.lower():
                raise AliasCollisionError(
                    f"Alias '{alias}' is already registered as an email for {other_email}"
                )
            if other.alias == alias:
                raise AliasCollisionError(f"Alias '{alias}' is already in use by {other_email}")
