"""MCP tools exposed by the mail server.

Every handler takes the ``MailboxFacade`` as its first argument; the server
binds it before registration.
"""

# Collect all tool schemas from every tool module.  Each module exposes a
# ``TOOL_SCHEMAS`` list of dicts with ``name``, ``description``,
# ``input_schema``, and ``handler`` keys.
from .accounts import TOOL_SCHEMAS as _accounts_schemas
from .email import TOOL_SCHEMAS as _email_schemas
from .filters import TOOL_SCHEMAS as _filters_schemas
from .folders import TOOL_SCHEMAS as _folders_schemas
from .labels import TOOL_SCHEMAS as _labels_schemas
from .threads import TOOL_SCHEMAS as _threads_schemas

ALL_TOOL_SCHEMAS: list[dict] = [
    *_email_schemas,
    *_folders_schemas,
    *_labels_schemas,
    *_filters_schemas,
    *_threads_schemas,
    *_accounts_schemas,
]

__all__ = ["ALL_TOOL_SCHEMAS"]
