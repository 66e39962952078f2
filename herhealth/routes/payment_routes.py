import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from herhealth.core import config
from herhealth.core.errors import BookingError, NotFound
from herhealth.database import get_db
from herhealth.models.booking import STATUS_PENDING
from herhealth.models.doctor import DoctorProfile
from herhealth.routes.common import database_unavailable, to_http_exception
from herhealth.services import payments
from herhealth.services.booking_service import BookingLifecycleManager
from herhealth.services.notifications import BackgroundNotifier

router = APIRouter(tags=['payments'])

logger = logging.getLogger(__name__)


class PaymentIntentRequest(BaseModel):
    booking_id: int


class PaymentIntentResponse(BaseModel):
    client_secret: str
    payment_intent_id: str
    amount: int
    currency: str


@router.post('/create-payment-intent', response_model=PaymentIntentResponse)
def create_payment_intent(data: PaymentIntentRequest, db: Session = Depends(get_db)):
    manager = BookingLifecycleManager(db)

    try:
        booking = manager.get_booking(data.booking_id)
        if booking.status != STATUS_PENDING:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='Only pending bookings can be paid for.',
            )

        result = payments.create_payment_intent(booking, db.get(DoctorProfile, booking.doctor_id))
        manager.attach_payment_intent(booking.id, result.payment_intent_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return PaymentIntentResponse(
        client_secret=result.client_secret,
        payment_intent_id=result.payment_intent_id,
        amount=result.amount,
        currency=config.CURRENCY,
    )


async def raw_body(request: Request) -> bytes:
    return await request.body()


@router.post('/webhook')
def stripe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    payload: bytes = Depends(raw_body),
    db: Session = Depends(get_db),
):
    try:
        event = payments.construct_event(payload, request.headers.get('stripe-signature'))
        booking_id = payments.booking_id_from_event(event)
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    if event.get('type') != payments.PAYMENT_SUCCEEDED_EVENT:
        logger.info('Ignoring Stripe event %s', event.get('type'))
        return {'received': True}

    payment_intent_id = event.get('data', {}).get('object', {}).get('id')
    manager = BookingLifecycleManager(db, BackgroundNotifier(background_tasks))

    try:
        if booking_id is None and payment_intent_id:
            booking = manager.find_by_payment_intent(payment_intent_id)
            booking_id = booking.id if booking else None

        if booking_id is None:
            logger.warning('Payment %s succeeded without a matching booking', payment_intent_id)
            return {'received': True}

        manager.confirm_payment(booking_id, payment_intent_id)
    except NotFound:
        logger.warning('Payment %s succeeded for unknown booking #%s', payment_intent_id, booking_id)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return {'received': True}
