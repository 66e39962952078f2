from datetime import date, datetime, timedelta

import pytest

from conftest import add_doctor, add_slot
from herhealth.core.errors import Conflict, NotFound, PolicyViolation, ValidationFailed
from herhealth.models.booking import Booking
from herhealth.models.slot import Slot
from herhealth.services.booking_service import BookingLifecycleManager, can_join, can_modify


def _create_booking(db, notifier, slot, patient, now):
    manager = BookingLifecycleManager(db, notifier)
    return manager.create_booking(slot.id, patient, reason_for_consultation='Irregular cycles', now=now)


def _confirmed_booking(db, notifier, slot, patient, now):
    created = _create_booking(db, notifier, slot, patient, now)
    return BookingLifecycleManager(db, notifier).confirm_payment(created.id, 'pi_123')


def test_create_booking_reserves_slot_and_starts_pending(db_session, notifier, doctor_profile, patient, fixed_now) -> None:
    slot = add_slot(db_session, doctor_profile.id, date(2026, 3, 5), '09:00')

    created = _create_booking(db_session, notifier, slot, patient, fixed_now)

    db_session.refresh(slot)
    assert created.status == 'pending'
    assert created.payment_status == 'unpaid'
    assert created.reminders_sent is False
    assert created.appointment_start == datetime(2026, 3, 5, 9, 0)
    assert created.meeting_url.endswith(f'herhealth-{created.id}')
    assert slot.is_available is False
    assert notifier.names == ['send_new_booking_notification']


def test_create_booking_on_taken_slot_creates_nothing(db_session, notifier, doctor_profile, patient, fixed_now) -> None:
    slot = add_slot(db_session, doctor_profile.id, date(2026, 3, 5), is_available=False)

    with pytest.raises(Conflict):
        _create_booking(db_session, notifier, slot, patient, fixed_now)

    assert db_session.query(Booking).count() == 0
    assert notifier.calls == []


def test_second_booking_for_same_slot_fails(db_session, notifier, doctor_profile, patient, fixed_now) -> None:
    slot = add_slot(db_session, doctor_profile.id, date(2026, 3, 5))
    _create_booking(db_session, notifier, slot, patient, fixed_now)

    with pytest.raises(Conflict):
        _create_booking(db_session, notifier, slot, patient, fixed_now)

    assert db_session.query(Booking).filter(Booking.slot_id == slot.id).count() == 1


def test_create_booking_rejects_past_slot(db_session, notifier, doctor_profile, patient, fixed_now) -> None:
    slot = add_slot(db_session, doctor_profile.id, date(2026, 3, 1))

    with pytest.raises(ValidationFailed):
        _create_booking(db_session, notifier, slot, patient, fixed_now)

    db_session.refresh(slot)
    assert slot.is_available is True


def test_confirm_payment_confirms_and_notifies_once(db_session, notifier, doctor_profile, patient, fixed_now) -> None:
    slot = add_slot(db_session, doctor_profile.id, date(2026, 3, 5))
    created = _create_booking(db_session, notifier, slot, patient, fixed_now)
    manager = BookingLifecycleManager(db_session, notifier)

    confirmed = manager.confirm_payment(created.id, 'pi_123')
    manager.confirm_payment(created.id, 'pi_123')

    assert confirmed.status == 'confirmed'
    assert confirmed.payment_status == 'paid'
    assert confirmed.payment_intent_id == 'pi_123'
    assert notifier.names.count('send_booking_confirmation') == 1


def test_confirm_payment_ignores_cancelled_booking(db_session, notifier, doctor_profile, patient, fixed_now) -> None:
    slot = add_slot(db_session, doctor_profile.id, date(2026, 3, 5))
    created = _create_booking(db_session, notifier, slot, patient, fixed_now)
    manager = BookingLifecycleManager(db_session, notifier)
    manager.cancel(created.id, now=fixed_now)

    result = manager.confirm_payment(created.id, 'pi_late')

    assert result.status == 'cancelled'
    assert result.payment_status == 'unpaid'


def test_confirm_payment_for_unknown_booking_raises(db_session, notifier) -> None:
    with pytest.raises(NotFound):
        BookingLifecycleManager(db_session, notifier).confirm_payment(404)


def test_reschedule_moves_booking_and_resets_reminders(db_session, notifier, doctor_profile, patient, fixed_now) -> None:
    old_slot = add_slot(db_session, doctor_profile.id, date(2026, 3, 5), '09:00')
    new_slot = add_slot(db_session, doctor_profile.id, date(2026, 3, 6), '14:00')
    booking = _confirmed_booking(db_session, notifier, old_slot, patient, fixed_now)
    booking.reminders_sent = True
    db_session.commit()

    moved = BookingLifecycleManager(db_session, notifier).reschedule(booking.id, new_slot.id, now=fixed_now)

    db_session.refresh(old_slot)
    db_session.refresh(new_slot)
    assert moved.status == 'confirmed'
    assert moved.slot_id == new_slot.id
    assert moved.appointment_date == date(2026, 3, 6)
    assert moved.appointment_time == '14:00'
    assert moved.appointment_start == datetime(2026, 3, 6, 14, 0)
    assert moved.reminders_sent is False
    assert moved.reschedule_count == 1
    assert old_slot.is_available is True
    assert new_slot.is_available is False
    assert notifier.names[-1] == 'send_reschedule_confirmation'


def test_reschedule_to_taken_slot_leaves_state_unchanged(db_session, notifier, doctor_profile, patient, fixed_now) -> None:
    old_slot = add_slot(db_session, doctor_profile.id, date(2026, 3, 5), '09:00')
    taken_slot = add_slot(db_session, doctor_profile.id, date(2026, 3, 6), '14:00', is_available=False)
    booking = _create_booking(db_session, notifier, old_slot, patient, fixed_now)

    with pytest.raises(Conflict):
        BookingLifecycleManager(db_session, notifier).reschedule(booking.id, taken_slot.id, now=fixed_now)

    db_session.refresh(booking)
    assert booking.slot_id == old_slot.id
    assert booking.reschedule_count == 0
    assert db_session.get(Slot, old_slot.id).is_available is False


def test_reschedule_rejects_other_doctors_slot(db_session, notifier, doctor_profile, patient, fixed_now) -> None:
    other_doctor = add_doctor(db_session, email='emily.chen@herhealth.com', specialty="Women's Health")
    old_slot = add_slot(db_session, doctor_profile.id, date(2026, 3, 5))
    other_slot = add_slot(db_session, other_doctor.id, date(2026, 3, 6))
    booking = _create_booking(db_session, notifier, old_slot, patient, fixed_now)

    with pytest.raises(ValidationFailed):
        BookingLifecycleManager(db_session, notifier).reschedule(booking.id, other_slot.id, now=fixed_now)

    assert db_session.get(Slot, other_slot.id).is_available is True


def test_cancel_within_notice_window_is_rejected(db_session, notifier, doctor_profile, patient, fixed_now) -> None:
    slot = add_slot(db_session, doctor_profile.id, date(2026, 3, 5), '09:00')
    booking = _confirmed_booking(db_session, notifier, slot, patient, fixed_now)
    two_hours_before = datetime(2026, 3, 5, 7, 0)

    with pytest.raises(PolicyViolation) as exception_info:
        BookingLifecycleManager(db_session, notifier).cancel(booking.id, now=two_hours_before)

    assert '24 hours' in exception_info.value.message
    db_session.refresh(booking)
    assert booking.status == 'confirmed'
    assert db_session.get(Slot, slot.id).is_available is False


def test_cancel_releases_slot(db_session, notifier, doctor_profile, patient, fixed_now) -> None:
    slot = add_slot(db_session, doctor_profile.id, date(2026, 3, 5))
    booking = _create_booking(db_session, notifier, slot, patient, fixed_now)

    cancelled = BookingLifecycleManager(db_session, notifier).cancel(booking.id, now=fixed_now)

    assert cancelled.status == 'cancelled'
    assert db_session.get(Slot, slot.id).is_available is True
    assert notifier.names[-1] == 'send_cancellation_confirmation'


def test_cancel_twice_is_a_conflict(db_session, notifier, doctor_profile, patient, fixed_now) -> None:
    slot = add_slot(db_session, doctor_profile.id, date(2026, 3, 5))
    booking = _create_booking(db_session, notifier, slot, patient, fixed_now)
    manager = BookingLifecycleManager(db_session, notifier)
    manager.cancel(booking.id, now=fixed_now)

    with pytest.raises(Conflict):
        manager.cancel(booking.id, now=fixed_now)


def test_mark_completed_requires_confirmed_booking(db_session, notifier, doctor_profile, patient, fixed_now) -> None:
    slot = add_slot(db_session, doctor_profile.id, date(2026, 3, 5))
    booking = _create_booking(db_session, notifier, slot, patient, fixed_now)
    manager = BookingLifecycleManager(db_session, notifier)

    with pytest.raises(Conflict):
        manager.mark_completed(booking.id)

    manager.confirm_payment(booking.id)
    completed = manager.mark_completed(booking.id)

    assert completed.status == 'completed'
    assert notifier.names[-1] == 'send_feedback_request'


def test_list_for_patient_requires_known_user(db_session) -> None:
    with pytest.raises(NotFound):
        BookingLifecycleManager(db_session).list_for_patient('nobody@example.com')


def test_modify_and_join_windows() -> None:
    start = datetime(2026, 3, 5, 9, 0)
    booking = Booking(status='confirmed', appointment_start=start)

    assert can_modify(booking, start - timedelta(hours=24)) is True
    assert can_modify(booking, start - timedelta(hours=23, minutes=59)) is False
    assert can_join(booking, start - timedelta(minutes=16)) is False
    assert can_join(booking, start - timedelta(minutes=15)) is True
    assert can_join(booking, start + timedelta(minutes=30)) is True
    assert can_join(booking, start + timedelta(minutes=31)) is False

    booking.status = 'cancelled'
    assert can_modify(booking, start - timedelta(days=3)) is False
    assert can_join(booking, start) is False
