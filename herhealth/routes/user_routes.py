import re

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from herhealth.database import get_db
from herhealth.models.user import User
from herhealth.routes.common import PHONE_PATTERN, database_unavailable

router = APIRouter(tags=['users'])


class PhoneUpdateRequest(BaseModel):
    phone: str | None = None

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.replace(' ', '').strip()
        if not normalized:
            return None

        if not re.fullmatch(PHONE_PATTERN, normalized):
            raise ValueError('Phone number must be in E.164 format (e.g. +447700900123).')

        return normalized


class PhoneResponse(BaseModel):
    user_id: int
    phone: str | None = None


def get_user_or_404(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='User not found.')
    return user


@router.get('/users/{user_id}/phone', response_model=PhoneResponse)
def get_phone(user_id: int, db: Session = Depends(get_db)):
    try:
        user = get_user_or_404(db, user_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return PhoneResponse(user_id=user.id, phone=user.phone)


@router.put('/users/{user_id}/phone', response_model=PhoneResponse)
def update_phone(user_id: int, data: PhoneUpdateRequest, db: Session = Depends(get_db)):
    try:
        user = get_user_or_404(db, user_id)
        user.phone = data.phone
        db.commit()
        db.refresh(user)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return PhoneResponse(user_id=user.id, phone=user.phone)
