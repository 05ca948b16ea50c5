"""Stable percentage bucketing.

The bucket for (flag_key, identity) never changes, so raising a rollout
percentage only ever adds identities to the enrolled set.
"""

from __future__ import annotations

import hashlib

BUCKETS = 100


def bucket_for(flag_key: str, identity: str) -> int:
    """Return the bucket in [0, 100) for an identity under a flag."""
    digest = hashlib.md5(f"{flag_key}:{identity}".encode()).hexdigest()
    return int(digest, 16) % BUCKETS


def is_in_rollout(flag_key: str, identity: str, percentage: int) -> bool:
    if percentage <= 0:
        return False
    if percentage >= BUCKETS:
        return True
    return bucket_for(flag_key, identity) < percentage
