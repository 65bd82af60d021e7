"""
Exact and fuzzy fingerprints for job content.

SHA-256 detects byte-exact equality. Simhash gives 64-bit fingerprints whose
Hamming distance tracks how different two texts are: a few bits for a near
duplicate, around half of them for unrelated text.
"""

import hashlib
import json
import re
from typing import Any, Dict, List, Optional, Union

SIMHASH_BITS = 64
DEFAULT_CHANGE_THRESHOLD = 10

METADATA_HASH_FIELDS = ("title", "company", "location", "first_published", "requisition_id")
METADATA_SIMHASH_FIELDS = ("title", "company", "location")

_PUNCTUATION = re.compile(r"[^\w\s]")

Fingerprint = Union[int, str]


def content_hash(content: Optional[str]) -> str:
    """SHA-256 hex digest of the raw content body (None hashes as empty)."""
    return hashlib.sha256((content or "").encode("utf-8")).hexdigest()


def canonical_metadata(metadata: Dict[str, Any], fields=METADATA_HASH_FIELDS) -> str:
    """JSON projection of the given fields with sorted keys."""
    projection = {name: metadata.get(name) for name in fields}
    return json.dumps(projection, sort_keys=True, default=str)


def metadata_hash(metadata: Dict[str, Any]) -> str:
    """SHA-256 hex digest of the canonical metadata projection."""
    return hashlib.sha256(canonical_metadata(metadata).encode("utf-8")).hexdigest()


def tokenize(text: str) -> List[str]:
    return _PUNCTUATION.sub(" ", text.lower()).split()


def simhash(text: Optional[str]) -> int:
    """
    64-bit simhash of ``text``.

    Each token votes on every bit position with the matching bit of its
    SHA-256 digest (bit ``i`` is bit ``i % 8`` of byte ``i // 8``): +1 when
    set, -1 otherwise. A fingerprint bit is set iff its total is positive.
    Empty or whitespace-only input yields 0.
    """
    if not text or not text.strip():
        return 0
    tokens = tokenize(text)
    if not tokens:
        return 0

    weights = [0] * SIMHASH_BITS
    for token in tokens:
        digest = hashlib.sha256(token.encode("utf-8")).digest()
        bits = int.from_bytes(digest[:SIMHASH_BITS // 8], "little")
        for i in range(SIMHASH_BITS):
            weights[i] += 1 if (bits >> i) & 1 else -1

    value = 0
    for i, weight in enumerate(weights):
        if weight > 0:
            value |= 1 << i
    return value


def metadata_simhash(metadata: Dict[str, Any]) -> int:
    return simhash(json.dumps({name: metadata.get(name) for name in METADATA_SIMHASH_FIELDS}, default=str))


def hamming_distance(a: Fingerprint, b: Fingerprint) -> int:
    """Number of differing bits; fingerprints may be ints or decimal strings."""
    return bin(int(a) ^ int(b)).count("1")


def is_significant_change(a: Fingerprint, b: Fingerprint, threshold: int = DEFAULT_CHANGE_THRESHOLD) -> bool:
    """True when the fingerprints differ in more than ``threshold`` bits."""
    return hamming_distance(a, b) > threshold
