import json
import logging
import secrets
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from herhealth.auth import jwt_handler
from herhealth.auth.dependencies import get_current_claims
from herhealth.core import config
from herhealth.core.errors import ProviderError
from herhealth.services import linkedin

router = APIRouter(tags=["auth"])

logger = logging.getLogger(__name__)


class AdminTokenRequest(BaseModel):
    api_key: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


def _invite_redirect(**params: str) -> RedirectResponse:
    return RedirectResponse(url=f"{config.FRONTEND_URL}/invite?{urlencode(params)}")


@router.get("/linkedin")
def linkedin_login():
    state = secrets.token_urlsafe(16)
    return {"auth_url": linkedin.build_authorization_url(state), "state": state}


@router.get("/linkedin/callback")
def linkedin_callback(code: str | None = None, state: str | None = None, error: str | None = None):
    if error or not code:
        logger.warning("LinkedIn callback without code (error=%s)", error)
        return _invite_redirect(linkedin_error=error or "missing_code")

    try:
        profile = linkedin.exchange_code_for_profile(code)
    except ProviderError:
        return _invite_redirect(linkedin_error="authentication_failed")

    return _invite_redirect(linkedin_data=json.dumps(profile))


@router.post("/linkedin/mock")
def linkedin_mock():
    return linkedin.mock_profile()


@router.post("/admin/token", response_model=TokenResponse)
def admin_token(data: AdminTokenRequest):
    if not config.ADMIN_API_KEY or not secrets.compare_digest(data.api_key, config.ADMIN_API_KEY):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid admin key")

    token = jwt_handler.create_access_token(subject="admin", role="admin")
    return TokenResponse(access_token=token)


@router.get("/me")
def me(claims: dict = Depends(get_current_claims)):
    return {"subject": claims["sub"], "role": claims.get("role", "user")}
