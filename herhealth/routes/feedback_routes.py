from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from herhealth.core.errors import BookingError
from herhealth.database import get_db
from herhealth.routes.common import database_unavailable, to_http_exception
from herhealth.services import feedback as feedback_service

router = APIRouter(tags=['feedback'])

MAX_COMMENT_LENGTH = 2000


class FeedbackRequest(BaseModel):
    booking_id: int
    rating: int
    comment: str | None = None
    is_anonymous: bool = False

    @field_validator('rating')
    @classmethod
    def validate_rating(cls, value: int) -> int:
        if value < 1 or value > 5:
            raise ValueError('Rating must be between 1 and 5.')
        return value

    @field_validator('comment')
    @classmethod
    def validate_comment(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_COMMENT_LENGTH:
            raise ValueError(f'Comment must be {MAX_COMMENT_LENGTH} characters or fewer.')

        return normalized


class FeedbackResponse(BaseModel):
    id: int
    booking_id: int
    doctor_id: int
    rating: int
    comment: str | None = None
    is_anonymous: bool
    created_at: datetime

    class Config:
        from_attributes = True


@router.post('/feedback', response_model=FeedbackResponse, status_code=status.HTTP_201_CREATED)
def submit_feedback(data: FeedbackRequest, db: Session = Depends(get_db)):
    try:
        return feedback_service.submit_feedback(
            db,
            booking_id=data.booking_id,
            rating=data.rating,
            comment=data.comment,
            is_anonymous=data.is_anonymous,
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/feedback/booking/{booking_id}', response_model=FeedbackResponse)
def get_booking_feedback(booking_id: int, db: Session = Depends(get_db)):
    try:
        feedback = feedback_service.get_feedback_for_booking(db, booking_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    if feedback is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='No feedback for this booking.')

    return feedback
