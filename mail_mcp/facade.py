"""Uniform mailbox operations across providers.

The facade resolves the target account, builds the provider bound to the
account's registered type and returns one normalized payload per operation
family. Callers never inspect the provider type.
"""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from .accounts.manager import AccountManager
from .core.config import Settings
from .models import (
    BatchResult,
    LabelMutation,
    MessageRef,
    OutgoingMessage,
    SearchCriteria,
)
from .oauth.google import GoogleOAuthClient
from .providers.base import MailProvider
from .providers.filter_templates import build_filter
from .providers.gmail import GmailClient, GmailProvider
from .providers.imap import ImapProvider, ImapSessionPool
from .storage.credential_store import AppPasswordCredentials, OAuthTokens

logger = logging.getLogger(__name__)


def _safe_filename(name: str | None, fallback: str) -> str:
    """Reduce a filename to its base name."""
    base = Path(name or "").name
    if base in ("", ".", ".."):
        return fallback
    return base


class MailboxFacade:
    """Account-aware entry point for every mail operation."""

    def __init__(
        self,
        account_manager: AccountManager,
        imap_pool: ImapSessionPool,
        oauth_client_factory: Callable[[], GoogleOAuthClient],
        settings: Settings,
    ):
        """
        Initialize the facade.

        Args:
            account_manager: Registry and credential access
            imap_pool: Cached IMAP sessions shared by all IMAP accounts
            oauth_client_factory: Builds the Google OAuth client for token refresh
            settings: Application settings
        """
        self.account_manager = account_manager
        self.imap_pool = imap_pool
        self.oauth_client_factory = oauth_client_factory
        self.settings = settings

    async def provider_for(self, account: str | None = None) -> MailProvider:
        """Build the provider for an account (the active one if omitted)."""
        email = self.account_manager.resolve_account(account)
        credentials = self.account_manager.get_credentials(email)

        if isinstance(credentials, OAuthTokens):

            def persist(tokens: OAuthTokens) -> None:
                self.account_manager.update_credentials(email, tokens)

            client = GmailClient(
                credentials, self.oauth_client_factory(), persist, self.settings
            )
            return GmailProvider(email, client, self.settings)

        if isinstance(credentials, AppPasswordCredentials):
            return ImapProvider(credentials, self.imap_pool, self.settings)

        raise TypeError(f"Unsupported credential record for {email}")

    @staticmethod
    def _ack(provider: MailProvider, message: str, **extra: Any) -> dict[str, Any]:
        return {"account": provider.email, "message": message, **extra}

    @staticmethod
    def _batch_payload(
        provider: MailProvider, action: str, result: BatchResult, noun: str = "messages"
    ) -> dict[str, Any]:
        message = f"{action}: {result.success_count} {noun} succeeded"
        if result.failure_count:
            message += f", {result.failure_count} failed"
        return {"account": provider.email, "message": message, **result.to_dict()}

    # Email

    async def send_email(self, account: str | None, message: OutgoingMessage) -> dict[str, Any]:
        provider = await self.provider_for(account)
        sent = await provider.send_email(message)
        return self._ack(
            provider,
            f"Email sent successfully with ID: {sent.id}",
            id=sent.id,
            thread_id=sent.thread_id,
            recipients=sent.recipients,
        )

    async def draft_email(self, account: str | None, message: OutgoingMessage) -> dict[str, Any]:
        provider = await self.provider_for(account)
        draft = await provider.save_draft(message)
        return self._ack(
            provider,
            f"Email draft saved successfully with ID: {draft.id}",
            id=draft.id,
            folder=draft.folder,
            thread_id=draft.thread_id,
        )

    async def read_email(
        self,
        account: str | None,
        ref: MessageRef,
        summary: bool = False,
        max_body_chars: int = 1000,
    ) -> dict[str, Any]:
        provider = await self.provider_for(account)
        email = await provider.read_email(ref, summary=summary, max_body_chars=max_body_chars)
        return {"account": provider.email, "email": email.to_dict()}

    async def search_emails(
        self, account: str | None, criteria: SearchCriteria
    ) -> dict[str, Any]:
        provider = await self.provider_for(account)
        results = await provider.search_emails(criteria)
        return {
            "account": provider.email,
            "folder": criteria.folder,
            "count": len(results),
            "emails": [summary.to_dict() for summary in results],
        }

    async def move_email(
        self, account: str | None, ref: MessageRef, destination: str
    ) -> dict[str, Any]:
        provider = await self.provider_for(account)
        await provider.move_email(ref, destination)
        return self._ack(
            provider,
            f"Email {ref.id} moved from {ref.folder} to {destination}",
            id=ref.id,
            destination=destination,
        )

    async def move_emails(
        self, account: str | None, ids: list[str], folder: str, destination: str
    ) -> dict[str, Any]:
        provider = await self.provider_for(account)
        result = await provider.move_emails(ids, folder, destination)
        payload = self._batch_payload(provider, f"Moved to {destination}", result)
        payload["destination"] = destination
        return payload

    async def delete_email(
        self, account: str | None, ref: MessageRef, permanent: bool = False
    ) -> dict[str, Any]:
        provider = await self.provider_for(account)
        trash = await provider.delete_email(ref, permanent=permanent)
        if trash is None:
            return self._ack(
                provider, f"Email {ref.id} deleted permanently", id=ref.id, permanent=True
            )
        return self._ack(
            provider, f"Email {ref.id} moved to {trash}", id=ref.id, permanent=False, folder=trash
        )

    async def mark_emails_read(
        self, account: str | None, ids: list[str], folder: str = "INBOX"
    ) -> dict[str, Any]:
        provider = await self.provider_for(account)
        result = await provider.mark_emails_read(ids, folder)
        return self._batch_payload(provider, "Marked as read", result)

    async def download_attachment(
        self,
        account: str | None,
        ref: MessageRef,
        attachment_id: str,
        filename: str | None = None,
        save_path: str | None = None,
    ) -> dict[str, Any]:
        provider = await self.provider_for(account)
        content = await provider.download_attachment(ref, attachment_id)

        target_dir = Path(save_path).expanduser() if save_path else Path.cwd()
        target_dir.mkdir(parents=True, exist_ok=True)
        name = _safe_filename(filename or content.filename, f"attachment-{attachment_id}")
        path = target_dir / name
        path.write_bytes(content.data)

        logger.info(f"Saved attachment {name} ({len(content.data)} bytes) to {target_dir}")
        return self._ack(
            provider,
            f"Attachment downloaded successfully to {path}",
            path=str(path),
            filename=name,
            size=len(content.data),
            mime_type=content.mime_type,
        )

    async def modify_email(
        self, account: str | None, message_id: str, mutation: LabelMutation
    ) -> dict[str, Any]:
        provider = await self.provider_for(account)
        label_ids = await provider.modify_email(message_id, mutation)
        return self._ack(
            provider, f"Email {message_id} labels updated", id=message_id, label_ids=label_ids
        )

    async def batch_modify_emails(
        self,
        account: str | None,
        ids: list[str],
        mutation: LabelMutation,
        batch_size: int | None = None,
    ) -> dict[str, Any]:
        provider = await self.provider_for(account)
        result = await provider.batch_modify_emails(ids, mutation, batch_size)
        return self._batch_payload(provider, "Batch label modification complete", result)

    async def batch_delete_emails(
        self, account: str | None, ids: list[str], batch_size: int | None = None
    ) -> dict[str, Any]:
        provider = await self.provider_for(account)
        result = await provider.batch_delete_emails(ids, batch_size)
        return self._batch_payload(provider, "Batch delete complete", result)

    # Folders

    async def list_folders(self, account: str | None = None) -> dict[str, Any]:
        provider = await self.provider_for(account)
        folders = await provider.list_folders()
        return {
            "account": provider.email,
            "count": len(folders),
            "folders": [folder.model_dump() for folder in folders],
        }

    async def create_folder(self, account: str | None, name: str) -> dict[str, Any]:
        provider = await self.provider_for(account)
        folder = await provider.create_folder(name)
        return self._ack(provider, f"Folder created: {folder.name}", folder=folder.model_dump())

    # Labels

    async def list_labels(self, account: str | None = None) -> dict[str, Any]:
        provider = await self.provider_for(account)
        labels = await provider.list_labels()
        return {"account": provider.email, **labels}

    async def create_label(
        self,
        account: str | None,
        name: str,
        message_list_visibility: str | None = None,
        label_list_visibility: str | None = None,
    ) -> dict[str, Any]:
        provider = await self.provider_for(account)
        label = await provider.create_label(name, message_list_visibility, label_list_visibility)
        return self._ack(provider, f"Label created: {label['name']}", label=label)

    async def update_label(
        self,
        account: str | None,
        label_id: str,
        name: str | None = None,
        message_list_visibility: str | None = None,
        label_list_visibility: str | None = None,
    ) -> dict[str, Any]:
        provider = await self.provider_for(account)
        label = await provider.update_label(
            label_id, name, message_list_visibility, label_list_visibility
        )
        return self._ack(provider, f"Label updated: {label['name']}", label=label)

    async def delete_label(self, account: str | None, label_id: str) -> dict[str, Any]:
        provider = await self.provider_for(account)
        deleted = await provider.delete_label(label_id)
        return self._ack(
            provider, f'Label "{deleted["name"]}" (ID: {label_id}) deleted', label=deleted
        )

    async def get_or_create_label(
        self,
        account: str | None,
        name: str,
        message_list_visibility: str | None = None,
        label_list_visibility: str | None = None,
    ) -> dict[str, Any]:
        provider = await self.provider_for(account)
        label, created = await provider.get_or_create_label(
            name, message_list_visibility, label_list_visibility
        )
        verb = "Created new" if created else "Found existing"
        return self._ack(provider, f"{verb} label: {label['name']}", label=label, created=created)

    # Filters

    async def create_filter(
        self, account: str | None, criteria: dict[str, Any], action: dict[str, Any]
    ) -> dict[str, Any]:
        provider = await self.provider_for(account)
        created = await provider.create_filter(criteria, action)
        return self._ack(provider, f"Filter created with ID: {created['id']}", filter=created)

    async def create_filter_from_template(
        self, account: str | None, template: str, parameters: dict[str, Any]
    ) -> dict[str, Any]:
        criteria, action = build_filter(template, parameters)
        provider = await self.provider_for(account)
        created = await provider.create_filter(criteria, action)
        return self._ack(
            provider,
            f"Filter created from template '{template}' with ID: {created['id']}",
            template=template,
            filter=created,
        )

    async def list_filters(self, account: str | None = None) -> dict[str, Any]:
        provider = await self.provider_for(account)
        filters = await provider.list_filters()
        return {"account": provider.email, "count": len(filters), "filters": filters}

    async def get_filter(self, account: str | None, filter_id: str) -> dict[str, Any]:
        provider = await self.provider_for(account)
        return {"account": provider.email, "filter": await provider.get_filter(filter_id)}

    async def delete_filter(self, account: str | None, filter_id: str) -> dict[str, Any]:
        provider = await self.provider_for(account)
        await provider.delete_filter(filter_id)
        return self._ack(provider, f"Filter with ID {filter_id} deleted successfully")

    # Threads

    async def modify_thread(
        self, account: str | None, thread_id: str, mutation: LabelMutation
    ) -> dict[str, Any]:
        provider = await self.provider_for(account)
        count = await provider.modify_thread(thread_id, mutation)
        return self._ack(
            provider,
            f"Thread {thread_id} labels updated ({count} messages)",
            thread_id=thread_id,
            message_count=count,
        )

    async def batch_modify_threads(
        self,
        account: str | None,
        ids: list[str],
        mutation: LabelMutation,
        batch_size: int | None = None,
    ) -> dict[str, Any]:
        provider = await self.provider_for(account)
        result = await provider.batch_modify_threads(ids, mutation, batch_size)
        payload = self._batch_payload(
            provider, "Batch thread modification complete", result, noun="threads"
        )
        payload["total_messages"] = sum(s["message_count"] for s in result.successes)
        return payload

    # Accounts

    async def list_accounts(self) -> dict[str, Any]:
        active = self.account_manager.get_active_account()
        accounts = [
            {
                "email": info.email,
                "alias": info.alias,
                "provider": info.provider,
                "last_used": info.last_used.isoformat(),
                "active": info.email == active,
            }
            for info in self.account_manager.list_accounts()
        ]
        return {"accounts": accounts, "count": len(accounts), "active_account": active}

    async def switch_account(self, account: str) -> dict[str, Any]:
        info = self.account_manager.set_active_account(account)
        return {
            "message": f"Switched to account: {info.email}",
            "email": info.email,
            "alias": info.alias,
            "provider": info.provider,
        }

    async def get_active_account(self) -> dict[str, Any]:
        active = self.account_manager.get_active_account()
        if not active:
            return {"active_account": None, "message": "No active account"}
        info = self.account_manager.get_account(active)
        if info is None:
            return {
                "active_account": active,
                "message": f"Active account {active} is no longer registered",
            }
        return {
            "active_account": info.email,
            "alias": info.alias,
            "provider": info.provider,
            "message": f"Active account: {info.email}",
        }

    async def remove_account(self, account: str) -> dict[str, Any]:
        info = self.account_manager.remove_account(account)
        await self.imap_pool.invalidate(info.email)
        return {"message": f"Removed account: {info.email}", "email": info.email}

    async def set_account_alias(self, account: str, alias: str) -> dict[str, Any]:
        info = self.account_manager.set_alias(account, alias)
        return {
            "message": f"Alias for {info.email} set to: {info.alias}",
            "email": info.email,
            "alias": info.alias,
        }
