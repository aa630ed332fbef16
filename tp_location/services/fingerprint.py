"""
Device fingerprinting for cross-supervisor correlation

The hashes are equality keys, not privacy measures.
"""
import hashlib
from typing import Any, Mapping, Optional, Union

DEVICE_HASH_LENGTH = 32

DeviceInfo = Union[Mapping[str, Any], Any, None]


def _field(device_info: DeviceInfo, name: str) -> str:
    if device_info is None:
        return ""
    if isinstance(device_info, Mapping):
        value = device_info.get(name)
    else:
        value = getattr(device_info, name, None)
    return str(value) if value else ""


def generate_device_hash(device_info: DeviceInfo, user_agent: Optional[str]) -> str:
    """
    Derive a stable device identifier.
    
    SHA-256 over device_id|model|os|user-agent, hex encoded and cut to 32
    characters. Missing values count as empty strings, so this never fails.
    """
    fingerprint = "|".join([
        _field(device_info, "device_id"),
        _field(device_info, "model"),
        _field(device_info, "os"),
        user_agent or "",
    ])
    return hashlib.sha256(fingerprint.encode()).hexdigest()[:DEVICE_HASH_LENGTH]


def hash_auth_credential(authorization: Optional[str]) -> str:
    """One-way hash of the raw Authorization header."""
    return hashlib.sha256((authorization or "").encode()).hexdigest()
