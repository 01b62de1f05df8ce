import logging

import requests
from fastapi import FastAPI, Request

from auth.token_exchange import exchange_auth_code_for_tokens, safe_fields
from settings import load_netsuite_settings

logger = logging.getLogger(__name__)

app = FastAPI()


@app.get("/oauth/callback")
async def oauth_callback(request: Request):
    """
    Redirect target for the NetSuite OAuth consent screen.
    Exchanges the code and hands back the refresh token for NETSUITE_REFRESH_TOKEN.
    """
    code = request.query_params.get("code")
    error = request.query_params.get("error")
    state = request.query_params.get("state")

    if error:
        return {"ok": False, "error": error, "state": state}

    if not code:
        return {"ok": False, "error": "missing_code", "state": state}

    settings = load_netsuite_settings(require_refresh_token=False)
    try:
        tokens = exchange_auth_code_for_tokens(code, settings=settings)
    except (RuntimeError, requests.RequestException) as exc:
        logger.error("OAuth callback token exchange failed: %s", exc)
        return {"ok": False, "error": "token_exchange_failed", "state": state}

    # Shown once in the local browser so the operator can copy it into .env; never logged
    return {
        "ok": True,
        "state": state,
        "refresh_token": tokens.get("refresh_token"),
        "token_response": safe_fields(tokens),
    }
