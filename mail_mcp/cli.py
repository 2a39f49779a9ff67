"""Command-line entry point: run the MCP server and onboard accounts.

Usage:
    mail-mcp                      # same as "mail-mcp serve"
    mail-mcp serve
    mail-mcp auth gmail [--alias work]
    mail-mcp auth imap [--alias personal] [--email you@icloud.com]
    mail-mcp accounts
"""

import argparse
import asyncio
import getpass
import logging
import shutil
import sys
from pathlib import Path

from dotenv import load_dotenv

from .accounts.manager import AccountManager
from .core.config import Settings
from .core.logging import setup_logging
from .oauth.google import GoogleAuthFlow, GoogleOAuthClient
from .providers.imap import verify_login
from .server.server import create_mail_server
from .storage.credential_store import AppPasswordCredentials, CredentialStore
from .utils.errors import MailError

logger = logging.getLogger(__name__)

OAUTH_KEYS_FILENAME = "gcp-oauth.keys.json"
ICLOUD_IMAP_HOST = "imap.mail.me.com"
ICLOUD_DOMAINS = ("@icloud.com", "@me.com", "@mac.com")


def _account_manager(settings: Settings) -> AccountManager:
    return AccountManager(CredentialStore(settings.mail_config_dir))


def copy_local_oauth_keys(settings: Settings, cwd: Path | None = None) -> Path | None:
    """Copy an OAuth keys file from the working directory into the config dir."""
    local_keys = (cwd or Path.cwd()) / OAUTH_KEYS_FILENAME
    target = settings.oauth_keys_path
    if not local_keys.exists() or local_keys.resolve() == target.resolve():
        return None
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(local_keys, target)
    logger.info(f"Copied OAuth keys from {local_keys} to {target}")
    return target


def startup_error(manager: AccountManager, settings: Settings) -> str | None:
    """Return a fatal configuration problem, or None if the server can start."""
    has_gmail = any(info.provider == "gmail" for info in manager.list_accounts())
    if has_gmail and not settings.oauth_keys_path.exists():
        return (
            f"OAuth keys file not found at {settings.oauth_keys_path}. Gmail accounts are "
            f"configured; place {OAUTH_KEYS_FILENAME} in the current directory or set "
            "GMAIL_OAUTH_PATH."
        )
    return None


def serve(settings: Settings) -> int:
    """Run the MCP server over stdio until the client disconnects."""
    copy_local_oauth_keys(settings)

    error = startup_error(_account_manager(settings), settings)
    if error:
        # stdout belongs to the MCP transport
        print(f"Error: {error}", file=sys.stderr)
        return 1

    server = create_mail_server(settings)
    server.setup_handlers()

    logger.info(f"Config directory: {settings.mail_config_dir}")
    logger.info(f"Registered tools: {list(server.tools.keys())}")

    try:
        asyncio.run(server.run())
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception as e:
        logger.exception(f"Server error: {e}")
        raise
    return 0


async def auth_gmail(settings: Settings, alias: str | None = None) -> str:
    """Authorize a Gmail account in the browser and register it."""
    copy_local_oauth_keys(settings)
    client = GoogleOAuthClient.from_keys_file(settings.oauth_keys_path, settings)
    tokens = await GoogleAuthFlow(client).authorize()
    email = await client.fetch_profile_email(tokens)

    scopes = tokens.scope.split() if tokens.scope else None
    _account_manager(settings).add_account(email, "gmail", tokens, alias=alias, scopes=scopes)
    return email


def validate_imap_email(email: str, imap_host: str) -> None:
    """Reject non-iCloud addresses when the iCloud server is targeted."""
    if "@" not in email:
        raise ValueError(f"Invalid email address: {email}")
    if imap_host == ICLOUD_IMAP_HOST and not email.lower().endswith(ICLOUD_DOMAINS):
        raise ValueError(
            f"{email} is not an iCloud address ({', '.join(ICLOUD_DOMAINS)}). "
            "Use --imap-host and --smtp-host for other providers."
        )


async def auth_imap(settings: Settings, args: argparse.Namespace) -> str:
    """Prompt for app-password credentials, verify them and register the account."""
    email = (args.email or input("Email address: ")).strip().lower()
    imap_host = args.imap_host or settings.imap_host
    validate_imap_email(email, imap_host)

    password = getpass.getpass("App-specific password: ").strip()
    if not password:
        raise ValueError("An app-specific password is required")

    credentials = AppPasswordCredentials(
        email=email,
        app_password=password,
        imap_host=imap_host,
        imap_port=args.imap_port or settings.imap_port,
        smtp_host=args.smtp_host or settings.smtp_host,
        smtp_port=args.smtp_port or settings.smtp_port,
    )

    print(f"Verifying login to {credentials.imap_host}...")
    await verify_login(credentials, settings)

    _account_manager(settings).add_account(email, "imap", credentials, alias=args.alias)
    return email


def list_accounts(settings: Settings) -> int:
    manager = _account_manager(settings)
    accounts = manager.list_accounts()
    if not accounts:
        print("No accounts configured. Run 'mail-mcp auth gmail' or 'mail-mcp auth imap'.")
        return 0

    active = manager.get_active_account()
    print(f"Configured accounts ({len(accounts)}):")
    for info in accounts:
        marker = "*" if info.email == active else " "
        alias = f" ({info.alias})" if info.alias else ""
        last_used = info.last_used.strftime("%Y-%m-%d %H:%M")
        print(f" {marker} {info.email}{alias} [{info.provider}] last used {last_used}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mail-mcp",
        description="MCP server for Gmail and IMAP/SMTP mail accounts.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    mail-mcp                              # Run the MCP server on stdio
    mail-mcp auth gmail --alias work      # Add a Gmail account
    mail-mcp auth imap --alias personal   # Add an iCloud account
    mail-mcp accounts                     # List configured accounts
""",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("serve", help="Run the MCP server over stdio (default)")

    auth = subparsers.add_parser("auth", help="Add an account")
    auth_providers = auth.add_subparsers(dest="provider", required=True)

    gmail = auth_providers.add_parser("gmail", help="Authorize a Gmail account via OAuth")
    gmail.add_argument("--alias", help="Short name for the account (e.g. 'work')")

    imap = auth_providers.add_parser("imap", help="Add an IMAP/SMTP account (app password)")
    imap.add_argument("--alias", help="Short name for the account (e.g. 'personal')")
    imap.add_argument("--email", help="Account email address (prompted if omitted)")
    imap.add_argument("--imap-host", help="IMAP server host (default: iCloud)")
    imap.add_argument("--imap-port", type=int, help="IMAP server port (default: 993)")
    imap.add_argument("--smtp-host", help="SMTP server host (default: iCloud)")
    imap.add_argument("--smtp-port", type=int, help="SMTP server port (default: 587)")

    subparsers.add_parser("accounts", help="List configured accounts")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Parse arguments and run the requested command."""
    load_dotenv()
    args = build_parser().parse_args(argv)
    settings = Settings()
    command = args.command or "serve"

    setup_logging(level=settings.log_level, log_file=settings.get_log_file(command))

    if command == "serve":
        sys.exit(serve(settings))

    if command == "accounts":
        sys.exit(list_accounts(settings))

    try:
        if args.provider == "gmail":
            email = asyncio.run(auth_gmail(settings, alias=args.alias))
        else:
            email = asyncio.run(auth_imap(settings, args))
    except (MailError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nCancelled.", file=sys.stderr)
        sys.exit(130)

    print(f"Account added: {email}")


if __name__ == "__main__":
    main()
