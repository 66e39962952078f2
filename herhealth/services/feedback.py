from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from herhealth.core.errors import Conflict, NotFound
from herhealth.models.booking import Booking
from herhealth.models.feedback import Feedback


def get_feedback_for_booking(db: Session, booking_id: int) -> Feedback | None:
    return db.query(Feedback).filter(Feedback.booking_id == booking_id).first()


def submit_feedback(
    db: Session,
    booking_id: int,
    rating: int,
    comment: str | None = None,
    is_anonymous: bool = False,
) -> Feedback:
    booking = db.get(Booking, booking_id)
    if booking is None:
        raise NotFound("Booking not found.")
    if get_feedback_for_booking(db, booking_id) is not None:
        raise Conflict("Feedback has already been submitted for this booking.")

    feedback = Feedback(
        booking_id=booking.id,
        doctor_id=booking.doctor_id,
        patient_id=booking.patient_id,
        rating=rating,
        comment=comment,
        is_anonymous=is_anonymous,
    )
    db.add(feedback)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("Feedback has already been submitted for this booking.") from exc

    db.refresh(feedback)
    return feedback


def get_doctor_rating(db: Session, doctor_id: int) -> dict:
    average, total = db.query(func.avg(Feedback.rating), func.count(Feedback.id)).filter(
        Feedback.doctor_id == doctor_id,
    ).one()

    if not total:
        return {"average_rating": 0.0, "total_feedbacks": 0}
    return {"average_rating": round(float(average), 1), "total_feedbacks": total}
