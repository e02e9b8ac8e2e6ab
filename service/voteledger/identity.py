# client address -> pseudonymous identity token
import hashlib
from typing import Mapping, Optional

UNKNOWN_ADDRESS = "unknown"


def derive_identity(raw_address: Optional[str], salt: str) -> str:
    """
    One-way salted hash of a client address.
    Same address + salt always gives the same token; blank addresses share
    the "unknown" bucket.
    """
    address = (raw_address or "").strip() or UNKNOWN_ADDRESS
    return hashlib.sha256((address + salt).encode("utf-8")).hexdigest()


def client_address(headers: Mapping[str, str], peer: Optional[str] = None) -> str:
    """
    Resolve the caller address: first X-Forwarded-For hop, then X-Real-IP,
    then the socket peer.
    """
    forwarded = headers.get("x-forwarded-for") or ""
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop

    real_ip = (headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip

    return (peer or "").strip() or UNKNOWN_ADDRESS
