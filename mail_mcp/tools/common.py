"""Schema fragments and argument helpers shared by the tool modules."""

from typing import Any

from ..models import LabelMutation

ACCOUNT_PROPERTY: dict[str, Any] = {
    "account": {
        "type": "string",
        "description": (
            "Email address or alias of the account to use. "
            "If not specified, uses the active account."
        ),
    }
}

STRING_LIST: dict[str, Any] = {"type": "array", "items": {"type": "string"}}

BATCH_SIZE_PROPERTY: dict[str, Any] = {
    "batch_size": {
        "type": "integer",
        "minimum": 1,
        "description": "Number of items to process in each batch (default: 50)",
    }
}

LABEL_VISIBILITY_PROPERTIES: dict[str, Any] = {
    "message_list_visibility": {
        "type": "string",
        "enum": ["show", "hide"],
        "description": "Whether to show or hide the label in the message list",
    },
    "label_list_visibility": {
        "type": "string",
        "enum": ["labelShow", "labelShowIfUnread", "labelHide"],
        "description": "Visibility of the label in the label list",
    },
}


def label_mutation(
    add_label_ids: list[str] | None = None,
    remove_label_ids: list[str] | None = None,
    label_ids: list[str] | None = None,
) -> LabelMutation:
    """Build a label change; ``label_ids`` is accepted as an alias for ``add_label_ids``."""
    return LabelMutation(
        add_label_ids=list(add_label_ids or label_ids or []),
        remove_label_ids=list(remove_label_ids or []),
    )
