"""
Keyed deterministic noise.

Every draw is a pure function of its key: the key is hashed with BLAKE2b
into a seed for a fresh numpy PCG64 generator, so the same
``(entity_id, action, purpose, time_bucket, seed)`` always yields the same
value and no state is shared between calls.
"""

from __future__ import annotations

import hashlib
import math

import numpy as np


def keyed_generator(
    entity_id: str,
    action: str,
    purpose: str,
    time_bucket: int = 0,
    seed: int = 0,
) -> np.random.Generator:
    """Fresh generator seeded from the key."""
    key = f"{entity_id}\x1f{action}\x1f{purpose}\x1f{int(time_bucket)}".encode("utf-8")
    digest = hashlib.blake2b(key, digest_size=16).digest()
    entropy = [
        int.from_bytes(digest[:8], "little"),
        int.from_bytes(digest[8:], "little"),
        int(seed) & 0xFFFFFFFFFFFFFFFF,
    ]
    return np.random.Generator(np.random.PCG64(np.random.SeedSequence(entropy)))


def keyed_uniform(
    entity_id: str,
    action: str,
    purpose: str,
    time_bucket: int = 0,
    seed: int = 0,
) -> float:
    """Uniform float in [0, 1) for the key."""
    return float(keyed_generator(entity_id, action, purpose, time_bucket, seed).random())


def signed_jitter(
    entity_id: str,
    action: str,
    purpose: str,
    amplitude: float,
    time_bucket: int = 0,
    seed: int = 0,
) -> float:
    """Keyed value in [-amplitude, amplitude)."""
    u = keyed_uniform(entity_id, action, purpose, time_bucket, seed)
    return (u - 0.5) * 2.0 * amplitude


def time_bucket(world_time: float, bucket_minutes: float) -> int:
    """Coarse time bucket; non-finite times fall into bucket 0."""
    if not math.isfinite(world_time):
        return 0
    return int(math.floor(world_time / bucket_minutes))
