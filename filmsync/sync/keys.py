"""Deterministic record identities.

Two devices that independently create "the same" logical entity (a member
named "Alice" in group G, a rating by "ana" for movie M) must land on one
remote record. Identities are therefore derived from the group scope and a
normalized natural key instead of being generated randomly.
"""

from __future__ import annotations

import hashlib

from filmsync.sync.constants import NO_GROUP_TOKEN


def normalize_natural_key(value: str) -> str:
    return value.strip().lower()


def derive_identity(scope: str | None, natural_key: str | bytes) -> str:
    """Return a stable 64-char hex identity for ``natural_key`` within ``scope``.

    Text keys are trimmed and lowercased first, so ``"Alice"`` and
    ``" alice "`` collapse to one identity. An empty key still produces a
    valid identity, distinct from every non-empty key.
    """
    if isinstance(natural_key, bytes):
        key_bytes = natural_key
    else:
        key_bytes = normalize_natural_key(natural_key).encode("utf-8")

    scope_token = f"group:{scope}" if scope else NO_GROUP_TOKEN

    digest = hashlib.sha256()
    digest.update(scope_token.encode("utf-8"))
    # Separator keeps ("ab", "c") and ("a", "bc") apart.
    digest.update(b"\x00")
    digest.update(key_bytes)
    return digest.hexdigest()


def compose_natural_key(*parts: str) -> str:
    """Join several normalized key parts, e.g. movie id and reviewer name."""
    return "|".join(normalize_natural_key(part) for part in parts)
