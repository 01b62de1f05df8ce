import csv
import io
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Iterable, List

from reminder_models import InvoiceSummary

# Note the space after the first comma
CSV_HEADER = "Customer Name, Customer Email,Invoice Number,Invoice Amount,Due Date,Days Overdue"


def format_days_overdue(days: float) -> str:
    """Whole days, rounded half away from zero (44.5 -> '45')."""
    return str(Decimal(str(days)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def invoice_row(customer_email: str, invoice: InvoiceSummary) -> List[str]:
    return [
        invoice.customer_name,
        customer_email,
        invoice.invoice_number,
        f"{invoice.amount:.2f}",
        invoice.due_date.isoformat(),
        format_days_overdue(invoice.days_overdue),
    ]


def csv_filename(customer_name: str, customer_id: str) -> str:
    # Same name every run for a customer: a rerun overwrites the previous file
    safe = customer_name.replace("/", "_").replace("\\", "_").strip() or "unknown"
    return f"Overdue_Invoices_{safe}_{customer_id}.csv"


@dataclass(frozen=True)
class CsvArtifact:
    path: Path
    content: bytes

    @property
    def filename(self) -> str:
        return self.path.name


def build_invoice_csv(customer_email: str, invoices: Iterable[InvoiceSummary]) -> bytes:
    buffer = io.StringIO()
    buffer.write(CSV_HEADER + "\n")
    writer = csv.writer(buffer, lineterminator="\n")
    for invoice in invoices:
        writer.writerow(invoice_row(customer_email, invoice))
    return buffer.getvalue().encode("utf-8")


def write_invoice_csv(
    output_dir: Path,
    customer_id: str,
    customer_name: str,
    customer_email: str,
    invoices: Iterable[InvoiceSummary],
) -> CsvArtifact:
    """
    Build one customer's overdue-invoice CSV, store it, and return the stored
    bytes so the email attaches exactly what was built for this customer.
    """
    content = build_invoice_csv(customer_email, invoices)

    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / csv_filename(customer_name, customer_id)
    path.write_bytes(content)

    return CsvArtifact(path=path, content=content)
