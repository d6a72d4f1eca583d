from __future__ import annotations

import hmac

from fastapi import Depends, Header, Request

from workforce.errors import ApiError
from workforce.settings import get_settings


def verify_gateway(x_gateway_secret: str | None = Header(default=None, alias="X-Gateway-Secret")) -> None:
    """Identity headers are trusted only when the upstream gateway vouches for them."""
    expected = (get_settings().gateway_shared_secret or "").strip()
    if not expected:
        return
    if not hmac.compare_digest((x_gateway_secret or "").strip(), expected):
        raise ApiError(status_code=401, code="INVALID_GATEWAY", message="Request did not come through the gateway.")


def require_employee(
    request: Request,
    x_employee_id: str | None = Header(default=None, alias="X-Employee-Id"),
    _: None = Depends(verify_gateway),
) -> int:
    raw = (x_employee_id or "").strip()
    try:
        employee_id = int(raw)
    except ValueError as exc:
        raise ApiError(status_code=401, code="MISSING_IDENTITY", message="Employee identity is missing.") from exc
    if employee_id < 1:
        raise ApiError(status_code=401, code="MISSING_IDENTITY", message="Employee identity is missing.")

    request.state.actor = "employee"
    request.state.actor_id = str(employee_id)
    request.state.employee_id = employee_id
    return employee_id


def require_admin(
    request: Request,
    x_admin_user: str | None = Header(default=None, alias="X-Admin-User"),
    _: None = Depends(verify_gateway),
) -> str:
    username = (x_admin_user or "").strip()
    if not username:
        raise ApiError(status_code=401, code="MISSING_IDENTITY", message="Administrator identity is missing.")

    request.state.actor = "admin"
    request.state.actor_id = username
    return username
