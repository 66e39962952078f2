from datetime import date, timedelta

import pytest

from herhealth.core.errors import Conflict, NotFound
from herhealth.models.doctor import DoctorProfile
from herhealth.models.invite import DoctorInvite
from herhealth.models.slot import Slot
from herhealth.models.user import User
from herhealth.services import onboarding
from herhealth.services.onboarding import DoctorOnboarding


def _profile(**overrides) -> DoctorOnboarding:
    values = {
        'first_name': 'Emily',
        'last_name': 'Chen',
        'specialty': "Women's Health",
        'qualifications': 'MD, FACOG',
        'experience': '12 years experience',
        'slots': [(date(2026, 3, 5), '09:00'), (date(2026, 3, 5), '10:30')],
    }
    values.update(overrides)
    return DoctorOnboarding(**values)


def test_create_invite_sets_expiry_and_queues_email(db_session, notifier, fixed_now) -> None:
    invite = onboarding.create_invite(db_session, ' Emily.Chen@Example.com ', notifier, now=fixed_now)

    assert invite.email == 'emily.chen@example.com'
    assert invite.is_used is False
    assert invite.expires_at == fixed_now + timedelta(days=7)
    assert len(invite.token) >= 32
    assert notifier.names == ['send_doctor_invite']
    assert notifier.calls[0][1][1] == onboarding.invite_url_for(invite.token)


def test_get_valid_invite_rejects_unknown_token(db_session) -> None:
    with pytest.raises(NotFound):
        onboarding.get_valid_invite(db_session, 'missing')


def test_get_valid_invite_rejects_expired_token(db_session, notifier, fixed_now) -> None:
    invite = onboarding.create_invite(db_session, 'doc@example.com', notifier, now=fixed_now)

    with pytest.raises(Conflict) as exception_info:
        onboarding.get_valid_invite(db_session, invite.token, now=fixed_now + timedelta(days=8))

    assert exception_info.value.message == 'This invite has expired.'


def test_complete_onboarding_creates_doctor_and_slots(db_session, notifier, fixed_now) -> None:
    invite = onboarding.create_invite(db_session, 'emily.chen@example.com', notifier, now=fixed_now)

    doctor = onboarding.complete_onboarding(db_session, invite.token, _profile(), now=fixed_now)

    user = db_session.get(User, doctor.user_id)
    assert user.email == 'emily.chen@example.com'
    assert user.is_doctor is True
    assert doctor.specialty == "Women's Health"
    assert db_session.query(Slot).filter(Slot.doctor_id == doctor.id).count() == 2
    assert db_session.get(DoctorInvite, invite.id).is_used is True


def test_invite_cannot_be_redeemed_twice(db_session, notifier, fixed_now) -> None:
    invite = onboarding.create_invite(db_session, 'emily.chen@example.com', notifier, now=fixed_now)
    onboarding.complete_onboarding(db_session, invite.token, _profile(), now=fixed_now)

    with pytest.raises(Conflict):
        onboarding.complete_onboarding(db_session, invite.token, _profile(first_name='Other'), now=fixed_now)

    assert db_session.query(DoctorProfile).count() == 1


def test_onboarding_for_existing_doctor_leaves_invite_unused(db_session, notifier, fixed_now) -> None:
    invite = onboarding.create_invite(db_session, 'emily.chen@example.com', notifier, now=fixed_now)
    existing_user = User(email='emily.chen@example.com', first_name='Emily', last_name='Chen', is_doctor=True)
    db_session.add(existing_user)
    db_session.flush()
    db_session.add(DoctorProfile(
        user_id=existing_user.id,
        specialty='General Practice',
        qualifications='MB ChB',
        experience='3 years',
    ))
    db_session.commit()

    with pytest.raises(Conflict):
        onboarding.complete_onboarding(db_session, invite.token, _profile(), now=fixed_now)

    assert db_session.get(DoctorInvite, invite.id).is_used is False


def test_cleanup_expired_invites_removes_only_stale_unused(db_session, notifier, fixed_now) -> None:
    stale_token = onboarding.create_invite(
        db_session, 'stale@example.com', notifier, now=fixed_now - timedelta(days=10)
    ).token
    fresh_token = onboarding.create_invite(db_session, 'fresh@example.com', notifier, now=fixed_now).token

    removed = onboarding.cleanup_expired_invites(db_session, now=fixed_now)

    assert removed == 1
    assert db_session.query(DoctorInvite).filter(DoctorInvite.token == stale_token).first() is None
    assert db_session.query(DoctorInvite).filter(DoctorInvite.token == fresh_token).first() is not None


def test_invite_url_points_at_frontend() -> None:
    assert onboarding.invite_url_for('abc').endswith('/invite/abc')
