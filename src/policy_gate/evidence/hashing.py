"""Stable content hashing for evidence inputs and policy checksums."""

import hashlib
import json
from collections.abc import Iterable
from typing import Any


def canonical_json(value: Any) -> str:
    """Serialize with sorted keys and no whitespace so equal data hashes equally."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def sha256_hex(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def hash_diff(diff: str | None, files: Iterable[tuple[str, str]] = ()) -> str:
    """Hash the diff text, or the (path, content) pairs when no diff is available.

    Pairs are sorted by path, so file order does not change the hash.
    """
    if diff:
        return sha256_hex(diff)
    return sha256_hex("\n---\n".join(f"{path}\n{content}" for path, content in sorted(files)))


def hash_file_list(paths: Iterable[str]) -> str:
    """Hash the file list; order-insensitive."""
    return sha256_hex("\n".join(sorted(paths)))
