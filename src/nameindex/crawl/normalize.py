"""
Key normalization for profile documents.

Document stores reserve two key shapes: keys containing ``.`` (path
separators) and keys starting with ``$`` (operators). ``normalize`` rewrites
both, recursively, into a fresh document:

    {"account.type": "x", "$oid": "1"}  ->  {"account_type": "x", "_oid": "1"}

The input is never mutated. Lists are walked so that dicts inside them
(``account`` entries, for instance) are normalized too; primitive list
elements are kept as-is.

Rewritten keys contain neither ``.`` nor a leading ``$``, so applying
``normalize`` twice gives the same result as applying it once.

When a rewritten key collides with a key already present at the same level
(``{"a.b": 1, "a_b": 2}``), the key that was already safe wins and the
rewritten value is dropped; between two rewritten keys, the one whose
original key sorts first wins. The result is independent of key order.
"""

from __future__ import annotations

from typing import Any

RESERVED_PREFIX = "$"
SEPARATOR = "."
REPLACEMENT = "_"


def normalize_key(key: str) -> str:
    if SEPARATOR in key:
        key = key.replace(SEPARATOR, REPLACEMENT)
    if key.startswith(RESERVED_PREFIX):
        key = REPLACEMENT + key[len(RESERVED_PREFIX):]
    return key


def normalize(doc: Any) -> Any:
    """Return a copy of ``doc`` with every dict key made storage-safe."""
    if isinstance(doc, dict):
        out: dict[Any, Any] = {}
        renamed: list[tuple[str, str, Any]] = []
        for key, value in doc.items():
            value = normalize(value)
            if isinstance(key, str):
                new_key = normalize_key(key)
                if new_key != key:
                    renamed.append((key, new_key, value))
                    continue
            out[key] = value
        for _, new_key, value in sorted(renamed, key=lambda item: item[0]):
            out.setdefault(new_key, value)
        return out
    if isinstance(doc, list):
        return [normalize(item) for item in doc]
    return doc
