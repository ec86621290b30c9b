"""Helpers that let logs describe budget documents without leaking their contents."""

import hashlib
import json
from collections.abc import Mapping
from typing import Any


def hash_payload(value: Any) -> str:
    """
    Return a stable SHA-256 hash for the provided payload.

    Strings are encoded as UTF-8, bytes are used as-is, and anything else is
    serialized as key-sorted JSON (non-JSON values go through str()).
    """

    if value is None:
        normalized = b"null"
    elif isinstance(value, bytes):
        normalized = value
    elif isinstance(value, str):
        normalized = value.encode("utf-8")
    else:
        normalized = json.dumps(value, sort_keys=True, default=str).encode("utf-8")

    return hashlib.sha256(normalized).hexdigest()


def describe_document(payload: Mapping[str, Any]) -> dict[str, Any]:
    """
    Summarize a serialized project document for structured logs.

    Only counts and a content hash are returned; descriptions, notes and donor
    names never reach the log stream.
    """

    sections = payload.get("sections") or []
    lines = payload.get("lines") or []
    meta = payload.get("meta") or {}
    return {
        "section_count": len(sections),
        "line_count": len(lines),
        "nested_line_count": sum(1 for line in lines if line.get("parentId")),
        "currency": meta.get("currency"),
        "payload_hash": hash_payload(payload),
    }
