"""
Deterministic hashing for migration content.

A migration unit is identified by its version token, but what the ledger
actually protects is its content: the checksum recorded at apply time is
compared with the on-disk script on every later run, so an edited unit is
detected instead of silently diverging.

Examples:
    >>> len(compute_checksum("DEFINE TABLE customer;\\n"))
    64

    >>> compute_checksum("a;\\r\\nb;\\r\\n") == compute_checksum("a;\\nb;\\n")
    True

Tags:
    hashing, checksum, idempotency, surql-migrate
"""

import hashlib


def compute_checksum(script: str) -> str:
    """Full SHA-256 hex digest of a migration script.

    Line endings are normalised so that a checkout with CRLF endings does
    not look like an edited migration.
    """
    normalized = script.replace("\r\n", "\n")
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()
