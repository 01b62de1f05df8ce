"""NetSuiteClient: token handling, SuiteQL paging and transient-error retries."""
import threading
import time
from unittest.mock import MagicMock

import pytest
import requests

from conftest import make_response
from netsuite_client import NetSuiteClient

_REAL_SLEEP = time.sleep


def _client(netsuite_settings, token_payloads=None):
    session = MagicMock()
    session.post.side_effect = [
        make_response(200, payload) for payload in (token_payloads or [{"access_token": "t1"}])
    ]
    return NetSuiteClient(settings=netsuite_settings, session=session), session


def test_host_is_lowercase_and_hyphenated(netsuite_settings):
    client, _ = _client(netsuite_settings)

    assert client.host == "3392496-sb2"
    assert client.token_url == (
        "https://3392496-sb2.suitetalk.api.netsuite.com/services/rest/auth/oauth2/v1/token"
    )


def test_token_is_fetched_once_and_reused(netsuite_settings):
    client, session = _client(netsuite_settings)
    session.request.return_value = make_response(200, {"items": []})

    client.get_metadata_catalog()
    client.get_metadata_catalog()

    assert session.post.call_count == 1
    data = session.post.call_args.kwargs["data"]
    assert data["grant_type"] == "refresh_token"
    assert data["refresh_token"] == "refresh"
    headers = session.request.call_args.kwargs["headers"]
    assert headers["Authorization"] == "Bearer t1"


def test_401_refreshes_token_and_retries_once(netsuite_settings):
    client, session = _client(
        netsuite_settings,
        token_payloads=[{"access_token": "t1"}, {"access_token": "t2"}],
    )
    session.request.side_effect = [
        make_response(401, text="expired"),
        make_response(200, {"name": "catalog"}),
    ]

    assert client.get_metadata_catalog() == {"name": "catalog"}
    assert session.post.call_count == 2
    assert session.request.call_args.kwargs["headers"]["Authorization"] == "Bearer t2"


def test_suiteql_clamps_limit(netsuite_settings):
    client, session = _client(netsuite_settings)
    session.request.return_value = make_response(200, {"items": []})

    client.suiteql("SELECT id FROM employee", limit=5000)
    assert session.request.call_args.kwargs["params"] == {"limit": 1000, "offset": 0}

    client.suiteql("SELECT id FROM employee", limit=0)
    assert session.request.call_args.kwargs["params"] == {"limit": 1, "offset": 0}


def test_iter_suiteql_walks_all_pages(netsuite_settings):
    client, session = _client(netsuite_settings)
    session.request.side_effect = [
        make_response(200, {"items": [{"id": 1}, {"id": 2}], "hasMore": True}),
        make_response(200, {"items": [{"id": 3}], "hasMore": False}),
    ]

    rows = list(client.iter_suiteql("SELECT id FROM transaction", page_size=2))

    assert [r["id"] for r in rows] == [1, 2, 3]
    offsets = [c.kwargs["params"]["offset"] for c in session.request.call_args_list]
    assert offsets == [0, 2]


def test_suiteql_retries_on_503(netsuite_settings):
    client, session = _client(netsuite_settings)
    session.request.side_effect = [
        make_response(503, text="busy"),
        make_response(200, {"items": [{"id": 9}]}),
    ]

    assert client.suiteql("SELECT id FROM transaction")["items"] == [{"id": 9}]
    assert session.request.call_count == 2


def test_suiteql_does_not_retry_bad_request(netsuite_settings):
    client, session = _client(netsuite_settings)
    session.request.return_value = make_response(400, text="Invalid search query")

    with pytest.raises(requests.HTTPError):
        client.suiteql("SELEC nonsense")
    assert session.request.call_count == 1


def test_connection_errors_give_up_after_three_attempts(netsuite_settings):
    client, session = _client(netsuite_settings)
    session.request.side_effect = requests.ConnectionError("reset")

    with pytest.raises(requests.ConnectionError):
        client.get_record("customer", 42, fields="email")
    assert session.request.call_count == 3


def test_get_record_builds_record_url(netsuite_settings):
    client, session = _client(netsuite_settings)
    session.request.return_value = make_response(200, {"email": "acme@example.com"})

    assert client.get_record("customer", 42, fields="email") == {"email": "acme@example.com"}
    args = session.request.call_args
    assert args.args == (
        "GET",
        "https://3392496-sb2.suitetalk.api.netsuite.com/services/rest/record/v1/customer/42",
    )
    assert args.kwargs["params"] == {"fields": "email"}


def test_retries_leave_time_sleep_alone(netsuite_settings):
    client, session = _client(netsuite_settings)
    session.request.side_effect = [
        make_response(503, text="busy"),
        make_response(200, {"email": "acme@example.com"}),
    ]

    assert client.get_record("customer", 42, fields="email") == {"email": "acme@example.com"}
    assert time.sleep is _REAL_SLEEP


def test_each_thread_gets_its_own_session(netsuite_settings):
    client = NetSuiteClient(settings=netsuite_settings)
    seen = []

    worker = threading.Thread(target=lambda: seen.append(client._session))
    worker.start()
    worker.join()

    assert client._session is client._session
    assert isinstance(seen[0], requests.Session)
    assert seen[0] is not client._session


def test_injected_session_is_shared_across_threads(netsuite_settings):
    client, session = _client(netsuite_settings)
    seen = []

    worker = threading.Thread(target=lambda: seen.append(client._session))
    worker.start()
    worker.join()

    assert seen == [session]
    assert client._session is session
