# multisig/core/canon.py
import hashlib
from typing import Any

try:
    import jcs
except ImportError:
    raise ImportError("Please install jcs: pip install jcs")


def canonical_json(obj: Any) -> bytes:
    """
    Produce deterministic UTF-8 bytes according to RFC 8785 (JSON Canonicalization Scheme).
    Returns bytes ready for hashing.
    """
    return jcs.canonicalize(obj)


def canonical_json_str(obj: Any) -> str:
    """Same as above, but returns string (stored as-is by the SQLite backends)."""
    return canonical_json(obj).decode("utf-8")


def payload_hash(payload: dict) -> str:
    """Hex sha256 of the canonical form of ``payload``."""
    return hashlib.sha256(canonical_json(payload)).hexdigest()
