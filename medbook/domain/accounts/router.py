"""Accounts router - registration, login, password reset and profile endpoints"""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from ...auth import get_current_account, get_current_practitioner, get_optional_account
from ...config import ADMIN_API_KEY, FRONTEND_URL
from ...database import get_db
from ...errors import Unauthorized
from ...models import Account
from ...rate_limiter import rate_limit_auth, rate_limit_password_reset
from ...services.notification_service import NotificationGateway, get_notifier
from .schemas import (
    BusyRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    ProfileUpdate,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
)
from .service import AccountService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Accounts"])


def get_account_service(
    db: Session = Depends(get_db), notifier: NotificationGateway = Depends(get_notifier)
) -> AccountService:
    """Dependency injection for AccountService"""
    return AccountService(db, notifier)


def require_admin_key(x_admin_key: Optional[str] = Header(None)) -> None:
    if not ADMIN_API_KEY or not x_admin_key or not hmac.compare_digest(x_admin_key, ADMIN_API_KEY):
        logger.warning("🚫 Registration key request without a valid admin key")
        raise Unauthorized("Admin key required")


# ============================================================================
# REGISTRATION & CREDENTIALS
# ============================================================================


@router.post("/register", response_model=RegisterResponse, dependencies=[Depends(rate_limit_auth)])
async def register(body: RegisterRequest, service: AccountService = Depends(get_account_service)):
    return await service.register(body.name, body.email, body.password, registration_key=body.doctor)


@router.get("/verify/{token}")
async def verify_email(token: str, service: AccountService = Depends(get_account_service)):
    service.verify_email(token)
    return RedirectResponse(url=f"{FRONTEND_URL}/login#success", status_code=302)


@router.post("/login", response_model=LoginResponse, dependencies=[Depends(rate_limit_auth)])
async def login(body: LoginRequest, service: AccountService = Depends(get_account_service)):
    return service.login(body.email, body.password)


@router.post("/forgotPassword", dependencies=[Depends(rate_limit_password_reset)])
async def forgot_password(body: ForgotPasswordRequest, service: AccountService = Depends(get_account_service)):
    await service.forgot_password(body.email)
    return {"message": "Password reset email sent"}


@router.post("/resetPassword/{token}", dependencies=[Depends(rate_limit_password_reset)])
async def reset_password(
    token: str, body: ResetPasswordRequest, service: AccountService = Depends(get_account_service)
):
    service.reset_password(token, body.password)
    return {"message": "Password changed successfully"}


@router.post("/add/key", dependencies=[Depends(require_admin_key)])
async def add_registration_key(service: AccountService = Depends(get_account_service)):
    """Issue a one-use practitioner registration key"""
    return service.create_registration_key()


# ============================================================================
# PROFILES
# ============================================================================


@router.get("/user")
async def get_own_profile(
    requester: Optional[Account] = Depends(get_optional_account),
    service: AccountService = Depends(get_account_service),
):
    return service.get_profile(None, requester)


@router.get("/user/{user_id}")
async def get_profile(
    user_id: str,
    requester: Optional[Account] = Depends(get_optional_account),
    service: AccountService = Depends(get_account_service),
):
    return service.get_profile(user_id, requester)


@router.put("/edit")
async def edit_profile(
    body: ProfileUpdate,
    account: Account = Depends(get_current_account),
    service: AccountService = Depends(get_account_service),
):
    service.edit_profile(account, body)
    return {"message": "Profile updated"}


@router.post("/busy")
async def add_busy_interval(
    body: BusyRequest,
    practitioner: Account = Depends(get_current_practitioner),
    service: AccountService = Depends(get_account_service),
):
    return service.add_busy_interval(practitioner, body.start, body.end)
