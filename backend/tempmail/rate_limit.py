"""
Coarse per-IP limits (slowapi) for read endpoints that clients poll.

Email creation is not limited here; it goes through the admission gate in
``tempmail.security.admission``.
"""

from slowapi import Limiter
from starlette.requests import Request

from tempmail.core.settings import get_settings
from tempmail.security.identity import client_ip


def client_address(request: Request) -> str:
    # Same address the admission gate sees, so proxied clients get their own bucket.
    return client_ip(request, get_settings().trust_forwarded_for)


limiter = Limiter(key_func=client_address)

PUBLIC_INBOX = "60/minute"  # polling of /emails/public/{address}
