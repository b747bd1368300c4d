"""JSON helpers for the payload column."""

import json
from typing import Any


def parse_payload(raw: str | dict | None) -> dict[str, Any]:
    """Parse a stored payload into a dict.

    Returns an empty dict for: None, empty string, invalid JSON, non-dict JSON.
    """
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, dict):
                return parsed
        except (ValueError, TypeError):
            pass
    return {}


def dump_payload(payload: dict[str, Any]) -> str:
    """Serialize a payload dict for storage. Keys are sorted for stable diffs."""
    return json.dumps(payload, sort_keys=True)
