"""Admin 2FA API.

POST /api/admin/security/2fa   {"action": "setup"|"enable"|"disable"|"verify", "code": "123456"}
GET  /api/admin/security/2fa   current status
"""

from __future__ import annotations

from functools import lru_cache

from fastapi import APIRouter, Depends, Header, Request

from familytable.auth.store import PostgresTwoFactorStore
from familytable.auth.two_factor import TwoFactorManager, UnauthorizedError
from familytable.models import StatusResponse, TwoFactorRequest

router = APIRouter(prefix="/api/admin/security", tags=["security"])


@lru_cache(maxsize=1)
def get_manager() -> TwoFactorManager:
    return TwoFactorManager(PostgresTwoFactorStore())


def current_user_id(x_user_id: str | None = Header(None)) -> str:
    """Identity is established upstream by the session layer and passed through."""
    if not x_user_id:
        raise UnauthorizedError("Unauthorized")
    return x_user_id


def client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


@router.post("/2fa")
def manage_two_factor(
    body: TwoFactorRequest,
    request: Request,
    user_id: str = Depends(current_user_id),
    manager: TwoFactorManager = Depends(get_manager),
) -> dict:
    result = manager.handle(user_id, body, ip=client_ip(request))
    return result.model_dump(mode="json", exclude_none=True)


@router.get("/2fa", response_model=StatusResponse)
def two_factor_status(
    user_id: str = Depends(current_user_id),
    manager: TwoFactorManager = Depends(get_manager),
):
    return manager.status(user_id)
