from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from herhealth.core.errors import ProviderError
from herhealth.services import linkedin


def _patch_client(monkeypatch: pytest.MonkeyPatch, handler) -> None:
    real_client = httpx.Client
    monkeypatch.setattr(
        httpx,
        'Client',
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )


def test_authorization_url_carries_state_and_redirect() -> None:
    query = parse_qs(urlparse(linkedin.build_authorization_url('state-123')).query)

    assert query['state'] == ['state-123']
    assert query['redirect_uri'] == ['http://localhost:8000/auth/linkedin/callback']


def test_exchange_code_for_profile_reads_localized_names(monkeypatch: pytest.MonkeyPatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == '/oauth/v2/accessToken':
            return httpx.Response(200, json={'access_token': 'token-abc'})
        assert request.headers['Authorization'] == 'Bearer token-abc'
        return httpx.Response(200, json={
            'firstName': {'localized': {'en_US': 'Emily'}},
            'lastName': {'localized': {'en_GB': 'Chen'}},
        })

    _patch_client(monkeypatch, handler)

    profile = linkedin.exchange_code_for_profile('auth-code')

    assert profile['first_name'] == 'Emily'
    assert profile['last_name'] == 'Chen'


def test_exchange_code_failure_raises_provider_error(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_client(monkeypatch, lambda request: httpx.Response(401, json={'error': 'invalid_grant'}))

    with pytest.raises(ProviderError):
        linkedin.exchange_code_for_profile('bad-code')
