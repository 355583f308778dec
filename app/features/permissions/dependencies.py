"""
FastAPI dependencies shared by the access-control routers.
"""
from typing import Annotated

from fastapi import Header, Request

from app.core.errors import InvalidInput
from app.features.permissions.engine import AccessControl


def get_access(request: Request) -> AccessControl:
    """Return the AccessControl built at startup."""
    return request.app.state.access


async def get_actor_id(
    x_employee_id: Annotated[str | None, Header()] = None,
) -> int:
    """
    Acting employee for audit entries.

    Taken from the X-Employee-ID header; a missing header means the system
    actor (0).
    """
    if x_employee_id is None or x_employee_id == "":
        return 0
    try:
        actor_id = int(x_employee_id)
    except ValueError:
        raise InvalidInput("X-Employee-ID must be an integer")
    if actor_id < 0:
        raise InvalidInput("X-Employee-ID must not be negative")
    return actor_id
