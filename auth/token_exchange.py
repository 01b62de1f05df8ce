"""
token_exchange.py

Purpose:
- Exchange a NetSuite OAuth authorization code
- For access token + refresh token
- The refresh token is what the reminder batch runs on (NETSUITE_REFRESH_TOKEN)
"""

import base64
import logging
from typing import Optional

import requests

from settings import NetSuiteSettings, load_netsuite_settings, require_env

logger = logging.getLogger(__name__)

# Fields that are safe to show an operator (never the tokens themselves)
SAFE_TOKEN_FIELDS = ("token_type", "expires_in", "scope")


def basic_auth_header(client_id: str, client_secret: str) -> str:
    raw = f"{client_id}:{client_secret}".encode("utf-8")
    encoded = base64.b64encode(raw).decode("utf-8")
    return f"Basic {encoded}"


def build_headers(settings: NetSuiteSettings) -> dict:
    return {
        "Authorization": basic_auth_header(settings.client_id, settings.client_secret),
        "Content-Type": "application/x-www-form-urlencoded",
        "Accept": "application/json",
    }


def build_token_request_body(auth_code: str, redirect_uri: str) -> dict:
    """
    Build the form-encoded body for NetSuite OAuth token exchange
    """
    return {
        "grant_type": "authorization_code",
        "code": auth_code,
        "redirect_uri": redirect_uri,
    }


def safe_fields(token_response: dict) -> dict:
    return {k: token_response.get(k) for k in SAFE_TOKEN_FIELDS}


def exchange_auth_code_for_tokens(
    auth_code: str,
    settings: Optional[NetSuiteSettings] = None,
    session: Optional[requests.Session] = None,
) -> dict:
    """
    Sends the token exchange request to NetSuite and returns the JSON response.
    """
    settings = settings or load_netsuite_settings(require_refresh_token=False)
    http = session or requests.Session()

    body = build_token_request_body(auth_code, settings.redirect_uri)
    resp = http.post(settings.token_url, data=body, headers=build_headers(settings), timeout=30)

    # If NetSuite returns an error, show a readable message (but DO NOT log secrets)
    if not resp.ok:
        logger.error("Token exchange failed: HTTP %s", resp.status_code)
        raise RuntimeError(
            f"Token exchange failed: HTTP {resp.status_code} - {resp.text}"
        )

    logger.info("Token exchange succeeded: %s", safe_fields(resp.json()))
    return resp.json()


if __name__ == "__main__":
    result = exchange_auth_code_for_tokens(require_env("NETSUITE_AUTH_CODE"))
    # Print only SAFE fields (do NOT print access_token / refresh_token)
    print("Token exchange success (safe fields):", safe_fields(result))
