import json
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional


class MalformedInvoiceError(ValueError):
    """An invoice row is missing a customer or has unparsable fields."""


class Status(str, Enum):
    EMITTED = "emitted"
    SKIPPED = "skipped"
    SENT = "sent"
    DRY_RUN = "dry_run"
    FAILED = "failed"


def parse_netsuite_date(d: Any) -> Optional[date]:
    """NetSuite may return dates like '01/30/2025' or '2025-01-30'. Convert to datetime.date."""
    if not d:
        return None
    if isinstance(d, datetime):
        return d.date()
    if isinstance(d, date):
        return d
    s = str(d).strip()
    if "/" in s:
        # Common NetSuite SuiteQL format: MM/DD/YYYY
        return datetime.strptime(s, "%m/%d/%Y").date()
    return date.fromisoformat(s)


def _ref_id(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


@dataclass(frozen=True)
class InvoiceSummary:
    invoice_id: str
    invoice_number: str
    amount: float
    due_date: date
    days_overdue: float
    customer_name: str
    sales_rep_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "InvoiceSummary":
        """
        Validate one SuiteQL invoice row. Raises MalformedInvoiceError.
        """
        invoice_id = _ref_id(row.get("invoice_id"))
        if invoice_id is None:
            raise MalformedInvoiceError("invoice row has no id")

        try:
            amount = float(row.get("amount"))
            due = parse_netsuite_date(row.get("due_date"))
            days_overdue = float(row.get("days_overdue"))
        except (TypeError, ValueError) as exc:
            raise MalformedInvoiceError(f"invoice {invoice_id}: {exc}") from exc

        if due is None:
            raise MalformedInvoiceError(f"invoice {invoice_id}: missing due date")

        return cls(
            invoice_id=invoice_id,
            invoice_number=str(row.get("invoice_number") or ""),
            amount=amount,
            due_date=due,
            days_overdue=days_overdue,
            customer_name=str(row.get("customer_name") or ""),
            sales_rep_id=_ref_id(row.get("sales_rep_id")),
        )

    def to_json(self) -> str:
        data = asdict(self)
        data["due_date"] = self.due_date.isoformat()
        return json.dumps(data)

    @classmethod
    def from_json(cls, raw: str) -> "InvoiceSummary":
        data = json.loads(raw)
        data["due_date"] = date.fromisoformat(data["due_date"])
        return cls(**data)


@dataclass
class CustomerAggregate:
    customer_id: str
    customer_name: str
    sales_rep_id: Optional[str]
    invoices: List[InvoiceSummary]
    email: Optional[str] = None

    @classmethod
    def from_values(cls, customer_id: str, values: List[str]) -> "CustomerAggregate":
        invoices = [InvoiceSummary.from_json(v) for v in values]
        if not invoices:
            raise ValueError(f"customer {customer_id} has no invoices")
        first = invoices[0]
        return cls(
            customer_id=customer_id,
            customer_name=first.customer_name,
            sales_rep_id=first.sales_rep_id,
            invoices=invoices,
        )


@dataclass
class MapResult:
    invoice_id: Optional[str]
    status: Status
    customer_id: Optional[str] = None
    value: Optional[str] = None
    reason: str = ""


@dataclass
class NotifyResult:
    customer_id: str
    customer_name: str
    status: Status
    reason: str = ""
    invoice_count: int = 0
    recipient: Optional[str] = None
    sender: Optional[str] = None
    csv_path: Optional[Path] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "status": self.status.value,
            "reason": self.reason,
            "invoice_count": self.invoice_count,
            "recipient": self.recipient,
            "sender": self.sender,
            "csv_path": str(self.csv_path) if self.csv_path else None,
        }


@dataclass
class BatchSummary:
    as_of_date: date
    invoices_found: int = 0
    map_results: List[MapResult] = field(default_factory=list)
    notify_results: List[NotifyResult] = field(default_factory=list)

    @property
    def invoices_mapped(self) -> int:
        return sum(1 for r in self.map_results if r.status == Status.EMITTED)

    def customers_with(self, status: Status) -> int:
        return sum(1 for r in self.notify_results if r.status == status)

    @property
    def rows_skipped(self) -> int:
        return sum(1 for r in self.map_results if r.status == Status.SKIPPED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "as_of_date": self.as_of_date.isoformat(),
            "invoices_found": self.invoices_found,
            "invoices_mapped": self.invoices_mapped,
            "rows_skipped": self.rows_skipped,
            "customers": {
                "sent": self.customers_with(Status.SENT),
                "dry_run": self.customers_with(Status.DRY_RUN),
                "skipped": self.customers_with(Status.SKIPPED),
                "failed": self.customers_with(Status.FAILED),
            },
            "results": [r.to_dict() for r in self.notify_results],
        }
