"""Pytest fixtures: fake NetSuite / SMTP collaborators so no test touches the network."""
import sys
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest
import requests
from tenacity import wait_none

# Ensure repository root is on sys.path for module resolution
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from netsuite_client import NetSuiteClient
from settings import NetSuiteSettings, ReminderSettings


def invoice_row(
    invoice_id: str = "1002",
    invoice_number: str = "INV-1002",
    customer_id: Optional[str] = "501",
    customer_name: str = "Acme Co",
    amount: Any = "500.00",
    due_date: Any = "2025-09-01",
    sales_rep_id: Optional[str] = None,
    days_overdue: Any = 44,
) -> Dict[str, Any]:
    """One SuiteQL row as returned by the overdue invoice query."""
    return {
        "invoice_id": invoice_id,
        "invoice_number": invoice_number,
        "customer_id": customer_id,
        "customer_name": customer_name,
        "amount": amount,
        "due_date": due_date,
        "sales_rep_id": sales_rep_id,
        "days_overdue": days_overdue,
    }


def make_response(status: int = 200, payload: Optional[dict] = None, text: str = "") -> MagicMock:
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status
    resp.ok = status < 400
    resp.text = text
    resp.json.return_value = payload if payload is not None else {}
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"HTTP {status}", response=resp)
    else:
        resp.raise_for_status.return_value = None
    return resp


class FakeNetSuiteClient:
    """Stands in for NetSuiteClient at the iter_suiteql / get_record seam."""

    def __init__(
        self,
        rows: Optional[List[Dict[str, Any]]] = None,
        customers: Optional[Dict[str, dict]] = None,
        employees: Optional[Dict[str, dict]] = None,
        query_error: Optional[Exception] = None,
    ) -> None:
        self.rows = rows or []
        self.records = {
            "customer": customers or {},
            "employee": employees or {},
        }
        self.query_error = query_error
        self.queries: List[str] = []

    def iter_suiteql(self, query: str, page_size: int = 1000):
        self.queries.append(query)
        yield from self.rows
        if self.query_error is not None:
            raise self.query_error

    def get_record(self, record_type: str, record_id: Any, fields: Optional[str] = None) -> dict:
        store = self.records[record_type]
        if str(record_id) not in store:
            raise requests.HTTPError(f"{record_type} {record_id} not found")
        return store[str(record_id)]


class FakeMailer:
    def __init__(self, fail_for: Optional[set] = None) -> None:
        self.sent: List[Dict[str, Any]] = []
        self.fail_for = fail_for or set()

    def send(self, sender, recipient, subject, body, attachments=None) -> None:
        if recipient in self.fail_for:
            raise ConnectionRefusedError(f"relay refused {recipient}")
        self.sent.append({
            "sender": sender,
            "recipient": recipient,
            "subject": subject,
            "body": body,
            "attachments": list(attachments or []),
        })


@pytest.fixture
def as_of() -> date:
    return date(2025, 10, 15)


@pytest.fixture
def reminder_settings(tmp_path: Path) -> ReminderSettings:
    return ReminderSettings(
        output_dir=tmp_path / "overdue",
        admin_email="admin@example.com",
        max_workers=2,
    )


@pytest.fixture
def netsuite_settings() -> NetSuiteSettings:
    return NetSuiteSettings(
        account_id="3392496_SB2",
        client_id="client",
        client_secret="secret",
        refresh_token="refresh",
    )


@pytest.fixture
def fake_mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def netsuite_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NETSUITE_ACCOUNT_ID", "3392496_SB2")
    monkeypatch.setenv("NETSUITE_CLIENT_ID", "client")
    monkeypatch.setenv("NETSUITE_CLIENT_SECRET", "secret")
    monkeypatch.setenv("NETSUITE_REFRESH_TOKEN", "refresh")


@pytest.fixture(autouse=True)
def no_backoff_wait(monkeypatch: pytest.MonkeyPatch) -> None:
    """Retry NetSuite reads immediately instead of backing off."""
    for method in (NetSuiteClient.suiteql, NetSuiteClient.get_record):
        monkeypatch.setattr(method.retry, "wait", wait_none())
