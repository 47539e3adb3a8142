"""
Identifier normalization for position and department references.

The org-structure API returns references in several shapes: a bare id
string, a "populated" sub-record such as ``{"_id": "...", "code": "..."}``,
Mongo extended JSON (``{"$oid": "..."}``), or occasionally an object whose
string form is the id.  Every comparison in the hierarchy engine goes
through ``normalize()`` so two references to the same record always
compare equal.
"""

import enum
from collections.abc import Mapping
from typing import Any

# Keys checked, in order, when a reference is a populated sub-record.
_ID_KEYS = ("_id", "id", "$oid")


class RefKind(enum.Enum):
    """Shape of a raw reference value."""

    MISSING = "missing"  # None or blank string
    BARE = "bare"  # str / int / UUID / ObjectId-like scalar
    POPULATED = "populated"  # mapping or object carrying an id field
    OPAQUE = "opaque"  # anything else; str() is taken as the id


def _embedded_id(ref: Any) -> Any:
    """Return the id carried by a populated reference, or None."""
    if isinstance(ref, Mapping):
        for key in _ID_KEYS:
            if ref.get(key) is not None:
                return ref[key]
        return None
    for attr in ("_id", "id"):
        value = getattr(ref, attr, None)
        if value is not None and not callable(value):
            return value
    return None


def classify(ref: Any) -> RefKind:
    """Tag a raw reference with its shape."""
    if ref is None:
        return RefKind.MISSING
    if isinstance(ref, str):
        return RefKind.BARE if ref.strip() else RefKind.MISSING
    if isinstance(ref, (int, float)) and not isinstance(ref, bool):
        return RefKind.BARE
    if _embedded_id(ref) is not None:
        return RefKind.POPULATED
    return RefKind.OPAQUE


def normalize(ref: Any) -> str:
    """
    Reduce any reference shape to a canonical id string.

    ``normalize(None)`` and blank strings give ``""``.  The result is
    stable under repeated application: ``normalize(normalize(x)) ==
    normalize(x)``.
    """
    kind = classify(ref)
    if kind is RefKind.MISSING:
        return ""
    if kind is RefKind.POPULATED:
        return normalize(_embedded_id(ref))
    return str(ref).strip()


def same_id(left: Any, right: Any) -> bool:
    """True when both references are present and name the same record."""
    left_id = normalize(left)
    return bool(left_id) and left_id == normalize(right)
