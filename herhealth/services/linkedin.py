"""LinkedIn profile import for doctor onboarding."""

import logging
from urllib.parse import urlencode

import httpx

from herhealth.core import config
from herhealth.core.errors import ProviderError

logger = logging.getLogger(__name__)

AUTHORIZATION_URL = "https://www.linkedin.com/oauth/v2/authorization"
TOKEN_URL = "https://www.linkedin.com/oauth/v2/accessToken"
PROFILE_URL = "https://api.linkedin.com/v2/me"
SCOPES = "r_liteprofile r_emailaddress"


def build_authorization_url(state: str) -> str:
    query = urlencode({
        "response_type": "code",
        "client_id": config.LINKEDIN_CLIENT_ID,
        "redirect_uri": config.LINKEDIN_REDIRECT_URI,
        "state": state,
        "scope": SCOPES,
    })
    return f"{AUTHORIZATION_URL}?{query}"


def _localized(field: dict | None) -> str:
    if not field:
        return ""
    localized = field.get("localized") or {}
    return localized.get("en_US") or next(iter(localized.values()), "")


def exchange_code_for_profile(code: str) -> dict:
    """Trade an authorization code for the doctor's basic profile fields."""
    try:
        with httpx.Client(timeout=config.EXTERNAL_TIMEOUT_SECONDS) as client:
            token_response = client.post(
                TOKEN_URL,
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": config.LINKEDIN_REDIRECT_URI,
                    "client_id": config.LINKEDIN_CLIENT_ID,
                    "client_secret": config.LINKEDIN_CLIENT_SECRET,
                },
            )
            token_response.raise_for_status()
            access_token = token_response.json()["access_token"]

            profile_response = client.get(PROFILE_URL, headers={"Authorization": f"Bearer {access_token}"})
            profile_response.raise_for_status()
            profile = profile_response.json()
    except (httpx.HTTPError, KeyError, ValueError) as exc:
        logger.exception("LinkedIn OAuth exchange failed")
        raise ProviderError("Failed to authenticate with LinkedIn") from exc

    return {
        "first_name": _localized(profile.get("firstName")),
        "last_name": _localized(profile.get("lastName")),
        "qualifications": "",
        "experience": "",
        "bio": "",
    }


def mock_profile() -> dict:
    return {
        "first_name": "Dr. Sarah",
        "last_name": "Thompson",
        "qualifications": (
            "MBBS (King's College London), MRCOG (Royal College of Obstetricians and Gynaecologists), "
            "Fellowship in Reproductive Medicine (Oxford)"
        ),
        "experience": (
            "15+ years in Women's Health and Fertility. Senior Consultant specialising in fertility "
            "treatments, PCOS management, and reproductive endocrinology."
        ),
        "bio": (
            "Passionate about making specialist women's healthcare accessible. I believe every woman "
            "deserves timely, expert care for her reproductive health concerns."
        ),
    }
