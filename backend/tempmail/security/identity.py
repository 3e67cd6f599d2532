from __future__ import annotations

from typing import Optional

from fastapi import Request

UNKNOWN_IP = "0.0.0.0"


def client_ip(request: Request, trust_forwarded_for: bool = True) -> str:
    """Best-effort client address: first ``X-Forwarded-For`` hop, else the peer."""
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    client = request.client
    return client.host if client and client.host else UNKNOWN_IP


def resolve_identity(ip: Optional[str], user_id: Optional[str] = None) -> str:
    """Return the rate-limit key: the authenticated user wins over the address.

    Malformed or missing addresses are not rejected; they simply become their
    own identity.
    """
    if user_id is not None and str(user_id) != "":
        return f"user:{user_id}"
    return f"ip:{ip or UNKNOWN_IP}"


__all__ = ["UNKNOWN_IP", "client_ip", "resolve_identity"]
