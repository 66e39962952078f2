"""Stripe payments and Connect onboarding for doctor payouts."""

import json
import logging
from dataclasses import dataclass

import stripe

from herhealth.core import config
from herhealth.core.errors import ProviderError, ValidationFailed
from herhealth.models.booking import Booking
from herhealth.models.doctor import DoctorProfile

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED_EVENT = "payment_intent.succeeded"


@dataclass(frozen=True)
class PaymentIntentResult:
    payment_intent_id: str
    client_secret: str
    amount: int
    application_fee_amount: int | None
    destination_account_id: str | None


def _configure_stripe() -> None:
    if not config.STRIPE_SECRET_KEY:
        raise ProviderError("Payments are not configured.")
    stripe.api_key = config.STRIPE_SECRET_KEY
    stripe.max_network_retries = 2
    stripe.default_http_client = stripe.RequestsClient(timeout=config.EXTERNAL_TIMEOUT_SECONDS)


def build_payment_intent_params(booking: Booking, doctor: DoctorProfile | None) -> dict:
    params: dict = {
        "amount": config.CONSULTATION_FEE_PENCE,
        "currency": config.CURRENCY,
        "transfer_group": f"booking_{booking.id}",
        "metadata": {"bookingId": str(booking.id)},
    }
    if doctor is not None and doctor.stripe_account_id:
        params["application_fee_amount"] = config.PLATFORM_FEE_PENCE
        params["transfer_data"] = {"destination": doctor.stripe_account_id}
    return params


def create_payment_intent(booking: Booking, doctor: DoctorProfile | None) -> PaymentIntentResult:
    params = build_payment_intent_params(booking, doctor)
    _configure_stripe()
    try:
        intent = stripe.PaymentIntent.create(**params)
    except stripe.StripeError as exc:
        logger.exception("Stripe payment intent creation failed for booking #%s", booking.id)
        raise ProviderError(f"Error creating payment intent: {exc.user_message or exc}") from exc

    return PaymentIntentResult(
        payment_intent_id=intent.id,
        client_secret=intent.client_secret,
        amount=params["amount"],
        application_fee_amount=params.get("application_fee_amount"),
        destination_account_id=params.get("transfer_data", {}).get("destination"),
    )


def construct_event(payload: bytes, signature: str | None) -> dict:
    """Parse a webhook payload, verifying its signature when a secret is configured."""
    if config.STRIPE_WEBHOOK_SECRET:
        if not signature:
            raise ValidationFailed("Missing Stripe signature.")
        try:
            stripe.Webhook.construct_event(payload, signature, config.STRIPE_WEBHOOK_SECRET)
        except (ValueError, stripe.SignatureVerificationError) as exc:
            raise ValidationFailed(f"Webhook error: {exc}") from exc

    try:
        return json.loads(payload)
    except ValueError as exc:
        raise ValidationFailed(f"Webhook error: {exc}") from exc


def booking_id_from_event(event: dict) -> int | None:
    if event.get("type") != PAYMENT_SUCCEEDED_EVENT:
        return None

    payment_intent = event.get("data", {}).get("object", {})
    booking_id = (payment_intent.get("metadata") or {}).get("bookingId")
    if not booking_id:
        return None
    try:
        return int(booking_id)
    except (TypeError, ValueError) as exc:
        raise ValidationFailed("Invalid bookingId in payment metadata.") from exc


def create_connect_account(doctor: DoctorProfile, email: str) -> tuple[str, str]:
    """Create (or reuse) the doctor's Express account; returns (account id, onboarding link)."""
    _configure_stripe()
    try:
        account_id = doctor.stripe_account_id
        if not account_id:
            account = stripe.Account.create(
                type="express",
                email=email,
                capabilities={"transfers": {"requested": True}},
                metadata={"doctorId": str(doctor.id)},
            )
            account_id = account.id

        link = stripe.AccountLink.create(
            account=account_id,
            refresh_url=f"{config.FRONTEND_URL}/dashboard/doctor?stripe_refresh=true",
            return_url=f"{config.FRONTEND_URL}/dashboard/doctor?stripe_success=true",
            type="account_onboarding",
        )
    except stripe.StripeError as exc:
        logger.exception("Stripe Connect onboarding failed for doctor #%s", doctor.id)
        raise ProviderError(f"Error creating Stripe account: {exc.user_message or exc}") from exc

    return account_id, link.url


def get_connect_status(doctor: DoctorProfile) -> dict:
    if not doctor.stripe_account_id:
        return {"connected": False, "charges_enabled": False, "payouts_enabled": False, "details_submitted": False}

    _configure_stripe()
    try:
        account = stripe.Account.retrieve(doctor.stripe_account_id)
    except stripe.StripeError as exc:
        logger.exception("Stripe account lookup failed for doctor #%s", doctor.id)
        raise ProviderError(f"Error fetching Stripe status: {exc.user_message or exc}") from exc

    return {
        "connected": True,
        "charges_enabled": bool(getattr(account, "charges_enabled", False)),
        "payouts_enabled": bool(getattr(account, "payouts_enabled", False)),
        "details_submitted": bool(getattr(account, "details_submitted", False)),
    }
