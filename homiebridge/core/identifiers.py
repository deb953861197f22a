"""Topic id validation shared by devices, nodes and properties."""

from __future__ import annotations

import re

from homiebridge.core.errors import InvalidIdentifierError

_ID_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]*[a-z0-9])?$")
_SLUG_STRIP_RE = re.compile(r"[^a-z0-9-]+")


def is_valid_id(value: str) -> bool:
    return bool(_ID_RE.match(value))


def validate_id(value: str, *, kind: str = "topic") -> str:
    if not isinstance(value, str) or not is_valid_id(value):
        raise InvalidIdentifierError(
            f"Invalid {kind} id {value!r}: use lowercase a-z, 0-9 and '-', "
            "not starting or ending with '-'"
        )
    return value


def slugify_id(text: str, *, kind: str = "topic") -> str:
    """Derive a valid id from free text such as a BLE address or a name."""
    lowered = text.strip().lower().replace(" ", "-").replace("_", "-")
    slug = _SLUG_STRIP_RE.sub("", lowered)
    slug = re.sub(r"-{2,}", "-", slug).strip("-")
    return validate_id(slug, kind=kind)
