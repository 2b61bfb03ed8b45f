"""Account repository - Database operations for accounts"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import ROLE_PRACTITIONER, Account, BusyInterval, RegistrationKey


class AccountRepository:
    """Repository for account database operations"""

    @staticmethod
    def get_by_account_id(db: Session, account_id: str) -> Optional[Account]:
        return db.query(Account).filter(Account.account_id == account_id).first()

    @staticmethod
    def get_by_email(db: Session, email: str) -> Optional[Account]:
        return db.query(Account).filter(Account.email == email).first()

    @staticmethod
    def get_practitioner(db: Session, account_id: str, for_update: bool = False) -> Optional[Account]:
        """Get a practitioner; `for_update` takes a row lock where the database supports it"""
        query = db.query(Account).filter(
            Account.account_id == account_id, Account.role == ROLE_PRACTITIONER
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def get_patient(db: Session, account_id: str) -> Optional[Account]:
        return (
            db.query(Account)
            .filter(Account.account_id == account_id, Account.role != ROLE_PRACTITIONER)
            .first()
        )

    @staticmethod
    def get_by_reset_token(db: Session, token: str, now: datetime) -> Optional[Account]:
        return (
            db.query(Account)
            .filter(Account.reset_token == token, Account.reset_token_expires_at > now)
            .first()
        )

    @staticmethod
    def list_practitioners(db: Session) -> list[Account]:
        return (
            db.query(Account)
            .filter(Account.role == ROLE_PRACTITIONER)
            .order_by(Account.created_at.asc(), Account.id.asc())
            .all()
        )

    @staticmethod
    def create_account(db: Session, **account_data) -> Account:
        account = Account(**account_data)
        db.add(account)
        db.commit()
        db.refresh(account)
        return account

    @staticmethod
    def update_account(db: Session, account: Account, **updates) -> Account:
        """Update an account with provided fields"""
        for key, value in updates.items():
            if value is not None and hasattr(account, key):
                setattr(account, key, value)

        db.commit()
        db.refresh(account)
        return account

    @staticmethod
    def add_busy_interval(db: Session, practitioner: Account, start: datetime, end: datetime) -> BusyInterval:
        interval = BusyInterval(practitioner_id=practitioner.account_id, start=start, end=end)
        db.add(interval)
        db.commit()
        db.refresh(interval)
        return interval

    @staticmethod
    def create_registration_key(db: Session, key: str) -> RegistrationKey:
        record = RegistrationKey(key=key)
        db.add(record)
        db.commit()
        db.refresh(record)
        return record

    @staticmethod
    def get_unused_registration_key(db: Session, key: str) -> Optional[RegistrationKey]:
        return (
            db.query(RegistrationKey)
            .filter(RegistrationKey.key == key, RegistrationKey.account_id.is_(None))
            .first()
        )
