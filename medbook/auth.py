import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .database import get_db
from .domain.accounts.repository import AccountRepository
from .errors import Unauthorized
from .models import Account
from .security_utils import verify_access_token

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def _resolve_account(token: str, db: Session) -> Optional[Account]:
    payload = verify_access_token(token)
    if not payload:
        return None

    account_id = payload.get("sub")
    if not account_id:
        logger.error(f"❌ Token missing subject claim. Available claims: {list(payload.keys())}")
        return None

    return AccountRepository.get_by_account_id(db, account_id)


async def get_current_account(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Account:
    """Get current account from the bearer token"""
    if not credentials:
        raise Unauthorized(
            "Not authenticated. Please provide a valid Bearer token in the Authorization header."
        )

    account = _resolve_account(credentials.credentials, db)
    if not account:
        raise Unauthorized("Invalid or expired token")

    logger.debug(f"✅ Account authenticated: {account.account_id} ({account.role})")
    return account


async def get_optional_account(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Optional[Account]:
    """Like get_current_account, but anonymous callers get None instead of a 401"""
    if not credentials:
        return None
    return _resolve_account(credentials.credentials, db)


async def get_current_practitioner(account: Account = Depends(get_current_account)) -> Account:
    if not account.is_practitioner:
        logger.warning(f"⚠️ Patient {account.account_id} attempted a practitioner-only route")
        raise Unauthorized("Practitioner account required")
    return account


async def get_current_patient(account: Account = Depends(get_current_account)) -> Account:
    if not account.is_patient:
        logger.warning(f"⚠️ Practitioner {account.account_id} attempted a patient-only route")
        raise Unauthorized("Patient account required")
    return account
