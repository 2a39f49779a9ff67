"""Named Gmail filter templates.

Each template turns a handful of parameters into a (criteria, action) pair
for the Gmail settings/filters endpoint.
"""

from collections.abc import Callable
from typing import Any

from ..utils.errors import ValidationError

FilterSpec = tuple[dict[str, Any], dict[str, Any]]


def _labels(params: dict[str, Any]) -> list[str]:
    return list(params.get("labelIds") or [])


def _require(params: dict[str, Any], key: str, template: str) -> Any:
    value = params.get(key)
    if value is None or value == "":
        raise ValidationError(f"{key} is required for {template} template")
    return value


def _action(add: list[str], remove: list[str] | None = None) -> dict[str, Any]:
    action: dict[str, Any] = {"addLabelIds": add}
    if remove:
        action["removeLabelIds"] = remove
    return action


def from_sender(params: dict[str, Any]) -> FilterSpec:
    sender = _require(params, "senderEmail", "fromSender")
    remove = ["INBOX"] if params.get("archive") else None
    return {"from": sender}, _action(_labels(params), remove)


def with_subject(params: dict[str, Any]) -> FilterSpec:
    subject = _require(params, "subjectText", "withSubject")
    remove = ["UNREAD"] if params.get("markAsRead") else None
    return {"subject": subject}, _action(_labels(params), remove)


def with_attachments(params: dict[str, Any]) -> FilterSpec:
    return {"hasAttachment": True}, _action(_labels(params))


def large_emails(params: dict[str, Any]) -> FilterSpec:
    size = _require(params, "sizeInBytes", "largeEmails")
    return {"size": int(size), "sizeComparison": "larger"}, _action(_labels(params))


def containing_text(params: dict[str, Any]) -> FilterSpec:
    text = _require(params, "searchText", "containingText")
    add = _labels(params)
    if params.get("markImportant"):
        add.append("IMPORTANT")
    return {"query": f'"{text}"'}, _action(add)


def mailing_list(params: dict[str, Any]) -> FilterSpec:
    list_id = _require(params, "listIdentifier", "mailingList")
    remove = ["INBOX"] if params.get("archive") else None
    return {"query": f"list:{list_id}"}, _action(_labels(params), remove)


FILTER_TEMPLATES: dict[str, Callable[[dict[str, Any]], FilterSpec]] = {
    "fromSender": from_sender,
    "withSubject": with_subject,
    "withAttachments": with_attachments,
    "largeEmails": large_emails,
    "containingText": containing_text,
    "mailingList": mailing_list,
}


def build_filter(template: str, params: dict[str, Any] | None = None) -> FilterSpec:
    """
    Expand a named template into filter criteria and action.

    Raises:
        ValidationError: If the template is unknown or a required parameter is missing
    """
    builder = FILTER_TEMPLATES.get(template)
    if builder is None:
        raise ValidationError(
            f"Unknown template: {template}. Available: {', '.join(FILTER_TEMPLATES)}"
        )
    return builder(params or {})
