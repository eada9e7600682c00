"""Canonical JSON and base64url helpers shared by signing and disclosure"""

import base64
import json
from typing import Any

from .errors import ValidationError


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")


def b64url_decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


def canonicalize(document: Any) -> bytes:
    """
    Deterministic JSON serialization

    Sorted keys, no insignificant whitespace, UTF-8 output. NaN and
    Infinity have no JSON form and are rejected.
    """
    try:
        return json.dumps(
            document,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False
        ).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Document cannot be canonicalized: {e}", operation="canonicalize") from e
