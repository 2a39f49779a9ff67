"""Account management tools.

Accounts are added from the command line (``mail-mcp auth``); these tools only
inspect and manage accounts that are already registered.
"""

from typing import Any

from ..facade import MailboxFacade
from ..utils.tool_decorators import handle_tool_errors


@handle_tool_errors
async def list_accounts(facade: MailboxFacade) -> dict[str, Any]:
    """List registered accounts, most recently used first."""
    return await facade.list_accounts()


@handle_tool_errors
async def switch_account(facade: MailboxFacade, account: str) -> dict[str, Any]:
    return await facade.switch_account(account)


@handle_tool_errors
async def get_active_account(facade: MailboxFacade) -> dict[str, Any]:
    return await facade.get_active_account()


@handle_tool_errors
async def remove_account(facade: MailboxFacade, account: str) -> dict[str, Any]:
    """Remove an account and delete its stored credentials."""
    return await facade.remove_account(account)


@handle_tool_errors
async def set_account_alias(facade: MailboxFacade, account: str, alias: str) -> dict[str, Any]:
    return await facade.set_account_alias(account, alias)


_ACCOUNT_ARG = {
    "account": {"type": "string", "description": "Email address or alias of the account"}
}

TOOL_SCHEMAS = [
    {
        "name": "list_accounts",
        "description": "List all configured email accounts and show which one is active.",
        "input_schema": {"type": "object", "properties": {}, "required": []},
        "handler": list_accounts,
    },
    {
        "name": "switch_account",
        "description": "Switch the active account used when no account is specified.",
        "input_schema": {
            "type": "object",
            "properties": {**_ACCOUNT_ARG},
            "required": ["account"],
        },
        "handler": switch_account,
    },
    {
        "name": "get_active_account",
        "description": "Show the currently active email account.",
        "input_schema": {"type": "object", "properties": {}, "required": []},
        "handler": get_active_account,
    },
    {
        "name": "remove_account",
        "description": "Remove an email account and delete its stored credentials.",
        "input_schema": {
            "type": "object",
            "properties": {**_ACCOUNT_ARG},
            "required": ["account"],
        },
        "handler": remove_account,
    },
    {
        "name": "set_account_alias",
        "description": "Set or change the short alias of an email account.",
        "input_schema": {
            "type": "object",
            "properties": {
                **_ACCOUNT_ARG,
                "alias": {"type": "string", "description": "New alias (e.g. 'work')"},
            },
            "required": ["account", "alias"],
        },
        "handler": set_account_alias,
    },
]
