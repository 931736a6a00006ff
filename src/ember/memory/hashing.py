"""Content hashing for memory de-duplication.

Hashes are computed over normalized text so that trivial variations in case,
whitespace and punctuation collapse to the same value.
"""

import hashlib
import re
from typing import Literal

HashAlgorithm = Literal["sha256", "md5"]

_WHITESPACE = re.compile(r"\s+")
_PUNCTUATION = re.compile(r"[^\w\s]")

_HASH_LENGTHS: dict[str, int] = {"sha256": 64, "md5": 32}
_HEX = re.compile(r"^[0-9a-fA-F]+$")


def normalize_text(text: str) -> str:
    """Lower-case, strip punctuation, collapse whitespace, trim."""
    text = _PUNCTUATION.sub("", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def generate_hash(
    text: str,
    *,
    normalize: bool = True,
    algorithm: HashAlgorithm = "sha256",
) -> str:
    """Hex digest of ``text`` (normalized by default).

    Raises:
        ValueError: If the algorithm is not supported.
    """
    if algorithm not in _HASH_LENGTHS:
        raise ValueError(f"Unsupported hash algorithm: {algorithm}")
    processed = normalize_text(text) if normalize else text
    return hashlib.new(algorithm, processed.encode("utf-8")).hexdigest()


def generate_short_hash(
    text: str,
    *,
    normalize: bool = True,
    algorithm: HashAlgorithm = "sha256",
) -> str:
    """First 16 hex characters of the hash, for display."""
    return generate_hash(text, normalize=normalize, algorithm=algorithm)[:16]


def is_same_hash(text1: str, text2: str, normalize: bool = True) -> bool:
    return generate_hash(text1, normalize=normalize) == generate_hash(
        text2, normalize=normalize
    )


def are_texts_similar(text1: str, text2: str) -> bool:
    """True when both texts normalize to the same string."""
    return normalize_text(text1) == normalize_text(text2)


def generate_hashes(
    texts: list[str],
    *,
    normalize: bool = True,
    algorithm: HashAlgorithm = "sha256",
) -> list[str]:
    return [
        generate_hash(text, normalize=normalize, algorithm=algorithm)
        for text in texts
    ]


def find_duplicates(
    texts: list[str],
    *,
    normalize: bool = True,
    algorithm: HashAlgorithm = "sha256",
) -> dict[str, list[str]]:
    """Group texts by hash, keeping only groups with more than one member."""
    groups: dict[str, list[str]] = {}
    for text in texts:
        digest = generate_hash(text, normalize=normalize, algorithm=algorithm)
        groups.setdefault(digest, []).append(text)
    return {digest: group for digest, group in groups.items() if len(group) > 1}


def create_hash_map(
    texts: list[str],
    *,
    normalize: bool = True,
    algorithm: HashAlgorithm = "sha256",
) -> dict[str, str]:
    """Map hash to text; the first occurrence of each hash wins."""
    hash_map: dict[str, str] = {}
    for text in texts:
        digest = generate_hash(text, normalize=normalize, algorithm=algorithm)
        hash_map.setdefault(digest, text)
    return hash_map


def generate_owner_hash(
    text: str,
    owner_id: str,
    *,
    normalize: bool = True,
    algorithm: HashAlgorithm = "sha256",
) -> str:
    """Hash namespaced by owner, for cross-owner unique keys."""
    return generate_hash(f"{owner_id}:{text}", normalize=normalize, algorithm=algorithm)


def is_valid_hash(value: object, algorithm: HashAlgorithm = "sha256") -> bool:
    if not isinstance(value, str):
        return False
    expected = _HASH_LENGTHS.get(algorithm)
    return expected is not None and len(value) == expected and bool(_HEX.match(value))
