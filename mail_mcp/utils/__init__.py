"""Shared utilities: error types and tool decorators."""

from .errors import (
    AccountNotFoundError,
    AliasCollisionError,
    AmbiguousAccountError,
    AttachmentNotFoundError,
    AuthenticationError,
    ConfigurationError,
    CredentialsNotFoundError,
    FilterNotFoundError,
    LabelNotFoundError,
    MailError,
    MessageNotFoundError,
    MissingOAuthKeysError,
    NotFoundError,
    ProtocolError,
    ProviderConnectionError,
    UnsupportedOperationError,
    ValidationError,
)
from .tool_decorators import describe_http_error, handle_tool_errors

__all__ = [
    "AccountNotFoundError",
    "AliasCollisionError",
    "AmbiguousAccountError",
    "AttachmentNotFoundError",
    "AuthenticationError",
    "ConfigurationError",
    "CredentialsNotFoundError",
    "FilterNotFoundError",
    "LabelNotFoundError",
    "MailError",
    "MessageNotFoundError",
    "MissingOAuthKeysError",
    "NotFoundError",
    "ProtocolError",
    "ProviderConnectionError",
    "UnsupportedOperationError",
    "ValidationError",
    "describe_http_error",
    "handle_tool_errors",
]
