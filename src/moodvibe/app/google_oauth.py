import logging
import secrets
from typing import Optional
from urllib.parse import urlencode

import requests

from ..agents.config import (
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_REDIRECT_URI,
    UPSTREAM_TIMEOUT_SECONDS,
)
from ..agents.errors import AuthenticationError

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
SCOPES = ["openid", "profile", "email"]
STATE_COOKIE = "oauth_state"
STATE_MAX_AGE_SECONDS = 600


def is_configured() -> bool:
    return bool(GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET)


def new_state() -> str:
    return secrets.token_urlsafe(32)


def state_matches(state: Optional[str], expected: Optional[str]) -> bool:
    """Checks the callback's `state` against the value stored in the login cookie."""
    if not state or not expected:
        return False
    return secrets.compare_digest(state, expected)


def build_authorization_url(state: str) -> str:
    params = {
        "client_id": GOOGLE_CLIENT_ID,
        "redirect_uri": GOOGLE_REDIRECT_URI,
        "response_type": "code",
        "scope": " ".join(SCOPES),
        "state": state,
        "prompt": "select_account",
    }
    return f"{AUTHORIZE_URL}?{urlencode(params)}"


def fetch_profile(code: str, session: requests.Session = None) -> dict:
    """
    Exchanges an authorization code for tokens and returns the user's
    OpenID profile (`sub`, `email`, `name`, `picture`).

    Raises:
        AuthenticationError: If the exchange or profile lookup fails, or the
            profile has no id or email.
    """
    http = session or requests
    try:
        token_resp = http.post(
            TOKEN_URL,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": GOOGLE_REDIRECT_URI,
                "client_id": GOOGLE_CLIENT_ID,
                "client_secret": GOOGLE_CLIENT_SECRET,
            },
            timeout=UPSTREAM_TIMEOUT_SECONDS,
        )
        token_resp.raise_for_status()
        access_token = token_resp.json()["access_token"]

        profile_resp = http.get(
            USERINFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=UPSTREAM_TIMEOUT_SECONDS,
        )
        profile_resp.raise_for_status()
        profile = profile_resp.json()
    except (requests.RequestException, ValueError, KeyError) as e:
        logger.error(f"Google token exchange failed: {e}")
        raise AuthenticationError("Google authentication failed") from e

    if not profile.get("sub") or not profile.get("email"):
        raise AuthenticationError("Invalid Google profile")
    return profile
