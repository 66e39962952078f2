import json
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from fastapi.testclient import TestClient

from herhealth.auth import jwt_handler
from herhealth.auth.dependencies import get_current_claims, require_admin
from herhealth.core.errors import ProviderError
from herhealth.database import get_db
from herhealth.main import app
from herhealth.routes import auth_routes
from herhealth.routes.auth_routes import AdminTokenRequest


def _redirect_query(response) -> dict:
    return parse_qs(urlparse(response.headers['location']).query)


def test_admin_token_issues_admin_jwt(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('herhealth.core.config.ADMIN_API_KEY', 'secret-admin-key')

    response = auth_routes.admin_token(AdminTokenRequest(api_key='secret-admin-key'))

    claims = jwt_handler.decode_access_token(response.access_token)
    assert claims['sub'] == 'admin'
    assert claims['role'] == 'admin'
    assert response.token_type == 'bearer'


@pytest.mark.parametrize('configured_key', ['', 'secret-admin-key'])
def test_admin_token_rejects_wrong_or_unset_key(monkeypatch: pytest.MonkeyPatch, configured_key: str) -> None:
    monkeypatch.setattr('herhealth.core.config.ADMIN_API_KEY', configured_key)

    with pytest.raises(HTTPException) as exception_info:
        auth_routes.admin_token(AdminTokenRequest(api_key='guess'))

    assert exception_info.value.status_code == 403


def test_get_current_claims_rejects_garbage_token() -> None:
    credentials = HTTPAuthorizationCredentials(scheme='Bearer', credentials='not-a-jwt')

    with pytest.raises(HTTPException) as exception_info:
        get_current_claims(credentials)

    assert exception_info.value.status_code == 401


def test_require_admin_rejects_user_role() -> None:
    with pytest.raises(HTTPException) as exception_info:
        require_admin({'sub': 'jane@example.com', 'role': 'user'})

    assert exception_info.value.status_code == 403


def test_me_returns_subject_and_role() -> None:
    token = jwt_handler.create_access_token('jane@example.com')
    claims = get_current_claims(HTTPAuthorizationCredentials(scheme='Bearer', credentials=token))

    assert auth_routes.me(claims) == {'subject': 'jane@example.com', 'role': 'user'}


def test_linkedin_login_returns_authorization_url() -> None:
    response = auth_routes.linkedin_login()

    query = parse_qs(urlparse(response['auth_url']).query)
    assert query['state'] == [response['state']]
    assert query['response_type'] == ['code']


def test_linkedin_callback_without_code_redirects_with_error() -> None:
    response = auth_routes.linkedin_callback(code=None, state=None, error='user_cancelled_login')

    assert _redirect_query(response) == {'linkedin_error': ['user_cancelled_login']}


def test_linkedin_callback_passes_profile_to_frontend(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        'herhealth.services.linkedin.exchange_code_for_profile',
        lambda code: {'first_name': 'Emily', 'last_name': 'Chen', 'qualifications': '', 'experience': '', 'bio': ''},
    )

    response = auth_routes.linkedin_callback(code='auth-code', state='xyz', error=None)

    profile = json.loads(_redirect_query(response)['linkedin_data'][0])
    assert urlparse(response.headers['location']).path == '/invite'
    assert profile['first_name'] == 'Emily'


def test_linkedin_callback_provider_failure_redirects_with_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def failing(code):
        raise ProviderError('Failed to authenticate with LinkedIn')

    monkeypatch.setattr('herhealth.services.linkedin.exchange_code_for_profile', failing)

    response = auth_routes.linkedin_callback(code='auth-code', state='xyz', error=None)

    assert _redirect_query(response) == {'linkedin_error': ['authentication_failed']}


def test_linkedin_mock_returns_sample_profile() -> None:
    assert auth_routes.linkedin_mock()['last_name'] == 'Thompson'


def test_doctor_invite_requires_admin_token(db_session, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('herhealth.core.config.RESEND_API_KEY', '')
    app.dependency_overrides[get_db] = lambda: db_session
    client = TestClient(app)
    try:
        anonymous = client.post('/api/doctor/invite', json={'email': 'emily@example.com'})
        as_user = client.post(
            '/api/doctor/invite',
            json={'email': 'emily@example.com'},
            headers={'Authorization': f'Bearer {jwt_handler.create_access_token("jane@example.com")}'},
        )
        as_admin = client.post(
            '/api/doctor/invite',
            json={'email': 'emily@example.com'},
            headers={'Authorization': f'Bearer {jwt_handler.create_access_token("admin", role="admin")}'},
        )
    finally:
        app.dependency_overrides.clear()

    assert anonymous.status_code in (401, 403)
    assert as_user.status_code == 403
    assert as_admin.status_code == 201
    assert '/invite/' in as_admin.json()['invite_url']
