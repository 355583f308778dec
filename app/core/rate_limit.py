"""
Request rate limiting.

Requests are keyed by the acting employee when the caller identifies one,
otherwise by client address.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request


def get_actor_key(request: Request) -> str:
    employee_id = request.headers.get("X-Employee-ID")
    if employee_id:
        return f"employee:{employee_id}"
    return get_remote_address(request)


limiter = Limiter(key_func=get_actor_key)
