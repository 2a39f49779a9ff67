"""Error types for the mail server."""


class MailError(Exception):
    """Base exception for mail server errors."""

    pass


class ValidationError(MailError):
    """Raised when tool input validation fails."""

    pass


class AuthenticationError(MailError):
    """Raised when authentication is required or fails."""

    pass


# Lookup errors
class NotFoundError(MailError):
    """Raised when a requested resource does not exist."""

    pass


class AccountNotFoundError(NotFoundError):
    """Raised when an account identifier does not match a registered account."""

    def __init__(self, identifier: str, available: list[str] | None = None):
        self.identifier = identifier
        self.available = available or []
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        message = f"Account not found: {self.identifier}"
        if self.available:
            message += f". Available accounts: {', '.join(self.available)}"
        return message


class CredentialsNotFoundError(AccountNotFoundError):
    """Raised when a registered account has no stored credential record."""

    def _format_message(self) -> str:
        return f"Credentials file not found for {self.identifier}. Please re-authenticate."


class MessageNotFoundError(NotFoundError):
    """Raised when a message reference does not resolve to a message."""

    def __init__(self, uid: str, folder: str | None = None):
        location = f" in {folder}" if folder else ""
        super().__init__(f"Message not found: UID {uid}{location}")
        self.uid = uid
        self.folder = folder


class AttachmentNotFoundError(NotFoundError):
    """Raised when no attachment matches the requested identifier."""

    def __init__(self, identifier: str):
        super().__init__(f"Attachment not found: {identifier}")
        self.identifier = identifier


class LabelNotFoundError(NotFoundError):
    """Raised when a label ID or name is unknown."""

    def __init__(self, label: str):
        super().__init__(f"Label not found: {label}")
        self.label = label


class FilterNotFoundError(NotFoundError):
    """Raised when a filter ID is unknown."""

    def __init__(self, filter_id: str):
        super().__init__(f"Filter not found: {filter_id}")
        self.filter_id = filter_id


# Account state errors
class AmbiguousAccountError(MailError):
    """Raised when no account was given and none can be chosen implicitly."""

    pass


class AliasCollisionError(MailError):
    """Raised when an alias is already taken by another account."""

    pass


# Provider errors
class ProviderConnectionError(MailError):
    """Raised when a provider connection fails or drops mid-operation."""

    pass


class ProtocolError(MailError):
    """Raised when a mail server rejects a command."""

    def __init__(self, command: str, detail: str = ""):
        message = f"{command} failed"
        if detail:
            message += f": {detail}"
        super().__init__(message)
        self.command = command
        self.detail = detail


class UnsupportedOperationError(MailError):
    """Raised when an account's provider does not offer an operation."""

    def __init__(self, operation: str, provider: str):
        super().__init__(f"{operation} is not supported for {provider} accounts")
        self.operation = operation
        self.provider = provider


# Configuration errors
class ConfigurationError(MailError):
    """Raised when configuration is missing or invalid."""

    pass


class MissingOAuthKeysError(ConfigurationError):
    """Raised when the Google OAuth client keys file cannot be found."""

    def __init__(self, path: str):
        super().__init__(
            f"OAuth keys file not found at {path}. Place gcp-oauth.keys.json in the "
            "current directory or in the mail-mcp config directory."
        )
        self.path = path
