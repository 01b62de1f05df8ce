import logging
import threading
import time
from typing import Any, Dict, Iterator, Optional

import requests
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from auth.token_exchange import basic_auth_header
from settings import NetSuiteSettings, load_netsuite_settings

logger = logging.getLogger(__name__)

# NetSuite REST SuiteQL 'limit' must be between 1 and 1000
SUITEQL_MAX_LIMIT = 1000

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return exc.response.status_code in RETRYABLE_STATUS
    return False


# Read-only calls are safe to repeat; writes never go through this
retry_transient = retry(
    retry=retry_if_exception(_is_transient),
    wait=wait_exponential_jitter(initial=1, max=30),
    stop=stop_after_attempt(3),
    reraise=True,
)


class NetSuiteClient:
    """
    Reusable NetSuite REST client that:
    - Reads config from .env (or takes a NetSuiteSettings)
    - Uses refresh_token to generate a fresh access_token
    - Automatically retries once if token is rejected (401)
    - Retries read calls on connection errors, 429 and 5xx with backoff
    - Logs timings/errors through logging (never stdout -> safer for MCP stdio)
    - Reuses HTTP connections via one requests.Session per thread
      (Session is not thread-safe; the notify stage calls in from a pool)
    """

    def __init__(
        self,
        settings: Optional[NetSuiteSettings] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.settings = settings or load_netsuite_settings()

        self.host = self.settings.host
        self.base_url = self.settings.base_url
        self.token_url = self.settings.token_url

        # Precompute Basic auth (client_id:client_secret)
        self._basic_auth = basic_auth_header(self.settings.client_id, self.settings.client_secret)

        # Cache token in memory for this process; worker threads share it
        self._access_token: Optional[str] = None
        self._token_lock = threading.Lock()

        # Reuse connections (faster, fewer TCP/TLS handshakes), one session per thread.
        # An injected session is used as-is from every thread.
        self._shared_session = session
        self._local = threading.local()

    @property
    def _session(self) -> requests.Session:
        if self._shared_session is not None:
            return self._shared_session
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._local.session = requests.Session()
        return session

    def _get_access_token(self) -> str:
        """
        Always fetch a NEW access token using refresh_token.
        Access tokens expire ~1 hour, so refresh token is the stable credential.
        """
        t0 = time.perf_counter()

        resp = self._session.post(
            self.token_url,
            headers={
                "Authorization": self._basic_auth,
                "Content-Type": "application/x-www-form-urlencoded",
            },
            data={
                "grant_type": "refresh_token",
                "refresh_token": self.settings.refresh_token,
                "scope": "rest_webservices",
            },
            timeout=30,
        )

        logger.debug("[TIMING] token request took %.2fs status=%s", time.perf_counter() - t0, resp.status_code)

        if resp.status_code >= 400:
            logger.error("TOKEN STATUS: %s", resp.status_code)
            logger.error("TOKEN BODY: %s", resp.text)

        resp.raise_for_status()
        token = resp.json()["access_token"]
        self._access_token = token
        return token

    def _current_token(self) -> str:
        with self._token_lock:
            return self._access_token or self._get_access_token()

    def _refresh_token_after_reject(self, rejected: str) -> str:
        with self._token_lock:
            # Another worker may have refreshed already
            if self._access_token and self._access_token != rejected:
                return self._access_token
            return self._get_access_token()

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        """
        Wrapper that:
        - Adds Bearer token
        - Retries once on 401 by refreshing token
        - Logs timings
        """
        token = self._current_token()

        headers = kwargs.pop("headers", {})
        headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
                "Prefer": "transient",
            }
        )

        t0 = time.perf_counter()
        resp = self._session.request(method, url, headers=headers, timeout=120, **kwargs)
        logger.debug("[TIMING] %s %s took %.2fs status=%s", method, url, time.perf_counter() - t0, resp.status_code)

        # If token was rejected, refresh once and retry
        if resp.status_code == 401:
            logger.warning("401 received, refreshing token and retrying once")
            token = self._refresh_token_after_reject(token)
            headers["Authorization"] = f"Bearer {token}"

            t1 = time.perf_counter()
            resp = self._session.request(method, url, headers=headers, timeout=120, **kwargs)
            logger.debug(
                "[TIMING] retry %s %s took %.2fs status=%s", method, url, time.perf_counter() - t1, resp.status_code
            )

        return resp

    def _raise_for_status(self, resp: requests.Response) -> None:
        if resp.status_code >= 400:
            logger.error("STATUS: %s", resp.status_code)
            logger.error("BODY: %s", resp.text)
        resp.raise_for_status()

    def get_metadata_catalog(self) -> dict:
        """
        Safe test call to confirm auth works.
        """
        url = f"{self.base_url}/services/rest/record/v1/metadata-catalog"
        resp = self._request("GET", url)
        self._raise_for_status(resp)
        return resp.json()

    @retry_transient
    def suiteql(self, query: str, limit: int = 100, offset: int = 0) -> dict:
        """
        Execute a SuiteQL query (one page).
        Note: NetSuite REST SuiteQL 'limit' must be between 1 and 1000.
        """
        url = f"{self.base_url}/services/rest/query/v1/suiteql"

        # Guardrails: NetSuite enforces 1..1000
        limit = max(1, min(int(limit), SUITEQL_MAX_LIMIT))

        resp = self._request(
            "POST",
            url,
            params={"limit": limit, "offset": offset},
            json={"q": query},
            headers={"Content-Type": "application/json"},
        )
        self._raise_for_status(resp)
        return resp.json()

    def iter_suiteql(self, query: str, page_size: int = SUITEQL_MAX_LIMIT) -> Iterator[Dict[str, Any]]:
        """
        Lazily yield every row of a SuiteQL query, one page at a time.
        NetSuite wants offset to be a multiple of limit, so we step by page_size.
        """
        page_size = max(1, min(int(page_size), SUITEQL_MAX_LIMIT))
        offset = 0

        while True:
            page = self.suiteql(query, limit=page_size, offset=offset)
            items = page.get("items", [])
            yield from items

            if not page.get("hasMore") or not items:
                return
            offset += page_size

    @retry_transient
    def get_record(self, record_type: str, record_id: Any, fields: Optional[str] = None) -> dict:
        """
        Load one record through the REST record API,
        e.g. get_record("customer", 42, fields="email").
        """
        url = f"{self.base_url}/services/rest/record/v1/{record_type}/{record_id}"
        params = {"fields": fields} if fields else None

        resp = self._request("GET", url, params=params)
        self._raise_for_status(resp)
        return resp.json()
