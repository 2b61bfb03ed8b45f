"""Account service - registration, credentials and profile management"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import API_BASE_URL, FRONTEND_URL, RESET_TOKEN_TTL_MINUTES
from ...errors import Conflict, NotFound, Unauthorized, ValidationError
from ...models import ROLE_PATIENT, ROLE_PRACTITIONER, Account
from ...security_utils import (
    create_access_token,
    generate_registration_key,
    generate_secure_token,
    generate_verification_token,
    hash_password,
    mask_sensitive_data,
    read_verification_token,
    verify_password,
)
from ...services.notification_service import NotificationGateway
from ...shared.validators import to_utc_naive, utc_now
from .repository import AccountRepository
from .schemas import ProfileUpdate

logger = logging.getLogger(__name__)

# PUT /edit body field -> column
PROFILE_FIELDS = {
    "name": "name",
    "description": "description",
    "profilePhoto": "profile_photo",
    "languageOptions": "language_options",
}
PRACTITIONER_FIELDS = {
    "helpOptions": "help_options",
    "rates": "rates",
    "weekendHours": "weekend_hours",
    "workdayHours": "workday_hours",
    "phoneNumber": "phone_number",
}


def practitioner_profile(account: Account) -> dict:
    return {
        "userId": account.account_id,
        "name": account.name,
        "description": account.description or "",
        "profilePhoto": account.profile_photo or "",
        "doctor": True,
        "helpOptions": account.help_options or [],
        "languageOptions": account.language_options or [],
        "rates": account.rates or {},
        "averageRating": account.average_rating or 0.0,
        "weekendHours": account.weekend_hours,
        "workdayHours": account.workday_hours,
        "email": account.email,
        "phoneNumber": account.phone_number,
        "balance": account.balance or 0,
    }


def patient_profile(account: Account) -> dict:
    return {
        "userId": account.account_id,
        "name": account.name,
        "description": account.description or "",
        "profilePhoto": account.profile_photo or "",
        "doctor": False,
        "languageOptions": account.language_options or [],
        "email": account.email,
    }


class AccountService:
    def __init__(self, db: Session, notifier: NotificationGateway):
        self.db = db
        self.notifier = notifier

    # ------------------------------------------------------------------
    # Registration & verification
    # ------------------------------------------------------------------

    async def register(self, name: str, email: str, password: str, registration_key: Optional[str] = None) -> dict:
        if AccountRepository.get_by_email(self.db, email):
            raise Conflict("An account with this email already exists")

        key_record = None
        if registration_key:
            key_record = AccountRepository.get_unused_registration_key(self.db, registration_key)
            if not key_record:
                raise ValidationError("Invalid registration key")

        verification_token = generate_secure_token()
        try:
            account = AccountRepository.create_account(
                self.db,
                role=ROLE_PRACTITIONER if key_record else ROLE_PATIENT,
                name=name,
                email=email,
                password_hash=hash_password(password),
                is_verified=False,
                verification_token=verification_token,
            )
        except IntegrityError as e:
            self.db.rollback()
            raise Conflict("An account with this email already exists") from e

        if key_record:
            key_record.account_id = account.account_id
            self.db.commit()
            logger.info(f"🔑 Registration key {mask_sensitive_data(key_record.key)} consumed by {account.account_id}")

        logger.info(f"👤 Registered {account.role} {account.account_id}")

        verify_url = f"{API_BASE_URL}/verify/{generate_verification_token(account.account_id, verification_token)}"
        await self.notifier.email_verification(account, verify_url)

        return {"token": create_access_token(account.account_id, account.role), "accountId": account.account_id}

    def verify_email(self, token: str) -> Account:
        data = read_verification_token(token)
        if not data:
            raise ValidationError("Invalid or expired token")

        account = AccountRepository.get_by_account_id(self.db, data.get("account_id", ""))
        if not account:
            raise ValidationError("Invalid or expired token")

        if account.is_verified:
            return account
        if account.verification_token != data.get("verification_token"):
            raise ValidationError("Invalid or expired token")

        account.is_verified = True
        account.verification_token = None
        self.db.commit()
        logger.info(f"✅ Email verified for {account.account_id}")
        return account

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> dict:
        account = AccountRepository.get_by_email(self.db, email)
        if not account or not verify_password(password, account.password_hash):
            logger.warning(f"🚫 Failed login for {email}")
            raise Unauthorized("Invalid email or password")

        return {
            "name": account.name,
            "token": create_access_token(account.account_id, account.role),
            "role": account.role,
        }

    async def forgot_password(self, email: str) -> None:
        account = AccountRepository.get_by_email(self.db, email)
        if not account:
            raise NotFound("User not found")

        reset_token = generate_secure_token()
        account.reset_token = reset_token
        account.reset_token_expires_at = utc_now() + timedelta(minutes=RESET_TOKEN_TTL_MINUTES)
        self.db.commit()

        await self.notifier.password_reset(account, f"{FRONTEND_URL}/resetPassword/{reset_token}")

    def reset_password(self, token: str, password: str) -> None:
        account = AccountRepository.get_by_reset_token(self.db, token, utc_now())
        if not account:
            raise ValidationError("Invalid or expired reset token")

        account.password_hash = hash_password(password)
        account.reset_token = None
        account.reset_token_expires_at = None
        self.db.commit()
        logger.info(f"🔒 Password reset for {account.account_id}")

    def create_registration_key(self, attempts: int = 5) -> dict:
        for _ in range(attempts):
            key = generate_registration_key()
            try:
                AccountRepository.create_registration_key(self.db, key)
            except IntegrityError:
                self.db.rollback()
                continue
            logger.info(f"🔑 Practitioner registration key issued: {mask_sensitive_data(key)}")
            return {"key": key, "url": f"{FRONTEND_URL}/register#{key}"}
        raise Conflict("Could not generate a unique registration key")

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def get_profile(self, account_id: Optional[str], requester: Optional[Account]) -> dict:
        """
        Practitioner profiles are public; a patient profile is only visible
        to that patient.
        """
        target_id = account_id or (requester.account_id if requester else None)
        if not target_id:
            raise Unauthorized("Not authenticated")

        account = AccountRepository.get_by_account_id(self.db, target_id)
        if not account:
            raise NotFound("User not found")

        if account.is_practitioner:
            return practitioner_profile(account)

        if requester is None or requester.account_id != account.account_id:
            raise Unauthorized("Unauthorized Data")
        return patient_profile(account)

    def edit_profile(self, account: Account, update: ProfileUpdate) -> Account:
        data = update.model_dump(exclude_none=True)
        updates = {PROFILE_FIELDS[k]: v for k, v in data.items() if k in PROFILE_FIELDS and v != ""}

        practitioner_updates = {PRACTITIONER_FIELDS[k]: v for k, v in data.items() if k in PRACTITIONER_FIELDS}
        if practitioner_updates:
            if not account.is_practitioner:
                raise ValidationError("Only practitioners can set rates, hours or help options")
            if "rates" in practitioner_updates:
                practitioner_updates["rates"] = {**(account.rates or {}), **practitioner_updates["rates"]}
            updates.update(practitioner_updates)

        return AccountRepository.update_account(self.db, account, **updates)

    def add_busy_interval(self, practitioner: Account, start: datetime, end: datetime) -> dict:
        start, end = to_utc_naive(start), to_utc_naive(end)
        if end <= start:
            raise ValidationError("Busy interval must end after it starts")
        AccountRepository.add_busy_interval(self.db, practitioner, start, end)
        return {"status": "success"}
