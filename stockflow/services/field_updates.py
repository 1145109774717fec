"""Partial-update helpers shared by the catalog and purchase order services."""

import json
from typing import Any


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


# Marks a keyword the caller did not send; ``None`` means "clear the field".
UNSET: Any = _Unset()


def apply_changes(record: Any, **fields: Any) -> dict[str, dict[str, Any]]:
    """Set every field that is not UNSET and return ``{field: {"from": old, "to": new}}`` for real changes.

    Values in the returned mapping are JSON-safe (Decimals and dates become strings)
    so it can go straight into an audit row.
    """
    changed: dict[str, dict[str, Any]] = {}
    for name, value in fields.items():
        if value is UNSET:
            continue
        previous = getattr(record, name)
        if previous == value:
            continue
        setattr(record, name, value)
        changed[name] = {"from": previous, "to": value}
    return json.loads(json.dumps(changed, default=str))
