"""
Monthly overdue-invoice reminders.

Stages of one batch run:
  1. get_input_data   - SuiteQL search for open invoices due by the end of last month
  2. map_invoice      - validate each row and key it by customer
  3. group_by_customer / reduce_customer
                      - one CSV + one email per customer, failures isolated per customer
  4. summarize        - log the outcome and optionally mail an operator report
"""

import logging
import re
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

import requests

from invoice_query import iter_overdue_invoices
from mailer import SMTPMailer
from netsuite_client import NetSuiteClient
from reminder_csv import write_invoice_csv
from reminder_models import (
    BatchSummary,
    CustomerAggregate,
    InvoiceSummary,
    MalformedInvoiceError,
    MapResult,
    NotifyResult,
    Status,
)
from settings import ReminderSettings

logger = logging.getLogger(__name__)

REMINDER_SUBJECT = "Monthly Overdue Invoice Notification"
REMINDER_BODY = (
    "Dear {customer_name},\n\n"
    "Please find attached your overdue invoices as of last month.\n\n"
    "Regards,\nFinance Team"
)
SUMMARY_SUBJECT = "Overdue Invoice Reminders Completed"

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def get_input_data(client: NetSuiteClient, as_of_date: date) -> List[Dict[str, Any]]:
    """
    Drain the overdue invoice search before anything is mapped,
    so a query failure never leaves a half-processed batch.
    """
    logger.debug("Starting overdue invoice search")
    try:
        return list(iter_overdue_invoices(client, as_of_date=as_of_date))
    except Exception:
        logger.exception("Overdue invoice search failed")
        raise


def map_invoice(row: Dict[str, Any]) -> MapResult:
    """Key one invoice row by customer id. Bad rows are skipped, never raised."""
    invoice_id = row.get("invoice_id")
    customer_id = row.get("customer_id")

    if customer_id is None or str(customer_id).strip() == "":
        logger.error("Map Error: invoice %s has no customer", invoice_id)
        return MapResult(invoice_id=invoice_id, status=Status.SKIPPED, reason="missing customer")

    try:
        summary = InvoiceSummary.from_row(row)
    except MalformedInvoiceError as exc:
        logger.error("Map Error: %s", exc)
        return MapResult(invoice_id=invoice_id, status=Status.SKIPPED, reason=str(exc))

    return MapResult(
        invoice_id=summary.invoice_id,
        status=Status.EMITTED,
        customer_id=str(customer_id).strip(),
        value=summary.to_json(),
    )


def group_by_customer(results: Iterable[MapResult]) -> "OrderedDict[str, List[str]]":
    """
    Collect emitted values per customer in arrival order.
    A second delivery of the same invoice for a customer is dropped.
    """
    groups: "OrderedDict[str, List[str]]" = OrderedDict()
    seen = set()

    for r in results:
        if r.status != Status.EMITTED:
            continue
        marker = (r.customer_id, r.invoice_id)
        if marker in seen:
            logger.debug("Duplicate invoice %s for customer %s dropped", r.invoice_id, r.customer_id)
            continue
        seen.add(marker)
        groups.setdefault(r.customer_id, []).append(r.value)

    return groups


def get_customer_email(client: NetSuiteClient, customer_id: str) -> Optional[str]:
    try:
        email = client.get_record("customer", customer_id, fields="email").get("email")
    except requests.RequestException as exc:
        logger.error("Customer Email Lookup Error: customer %s: %s", customer_id, exc)
        return None
    return (email or "").strip() or None


def resolve_sender(
    client: NetSuiteClient,
    sales_rep_id: Optional[str],
    settings: ReminderSettings,
) -> str:
    """
    Sales rep's address when the customer has one, else the administrator identity.
    """
    if sales_rep_id:
        try:
            rep_email = client.get_record("employee", sales_rep_id, fields="email").get("email")
        except requests.RequestException as exc:
            logger.warning("Sales rep %s lookup failed, using administrator: %s", sales_rep_id, exc)
            rep_email = None
        if rep_email:
            return rep_email
        logger.warning("Sales rep %s has no email, using administrator", sales_rep_id)

    if not settings.admin_email:
        raise ValueError(
            f"No sender available: REMINDER_ADMIN_EMAIL is not set (administrator id {settings.admin_sender_id})"
        )
    return settings.admin_email


def reduce_customer(
    client: NetSuiteClient,
    mailer: Optional[SMTPMailer],
    settings: ReminderSettings,
    customer_id: str,
    values: List[str],
) -> NotifyResult:
    """
    Email one customer their overdue invoices as a CSV attachment.
    Every failure is logged and returned; nothing propagates to other customers.
    """
    customer_name = ""
    try:
        customer = CustomerAggregate.from_values(customer_id, values)
        customer_name = customer.customer_name

        customer.email = get_customer_email(client, customer_id)
        if not customer.email:
            logger.error("Missing Email: Customer %s (%s) has no email", customer_name, customer_id)
            return NotifyResult(
                customer_id=customer_id,
                customer_name=customer_name,
                status=Status.SKIPPED,
                reason="no email address",
                invoice_count=len(customer.invoices),
            )

        artifact = write_invoice_csv(
            settings.output_dir, customer_id, customer_name, customer.email, customer.invoices
        )
        sender = resolve_sender(client, customer.sales_rep_id, settings)
        recipient = settings.test_recipient or customer.email

        result = NotifyResult(
            customer_id=customer_id,
            customer_name=customer_name,
            status=Status.DRY_RUN,
            invoice_count=len(customer.invoices),
            recipient=recipient,
            sender=sender,
            csv_path=artifact.path,
        )

        if settings.dry_run:
            logger.info("Dry run: reminder for %s (%s) not sent, CSV at %s", customer_name, recipient, artifact.path)
            return result

        if mailer is None:
            raise ValueError("no mailer configured")

        mailer.send(
            sender=sender,
            recipient=recipient,
            subject=REMINDER_SUBJECT,
            body=REMINDER_BODY.format(customer_name=customer_name),
            attachments=[(artifact.filename, artifact.content)],
        )
        logger.info("Email Sent: to %s (%s) from %s", customer_name, recipient, sender)
        result.status = Status.SENT
        return result

    except Exception as exc:
        logger.exception("Reduce Error: customer %s (%s)", customer_name, customer_id)
        return NotifyResult(
            customer_id=customer_id,
            customer_name=customer_name,
            status=Status.FAILED,
            reason=str(exc),
            invoice_count=len(values),
        )


def _summary_body(summary: BatchSummary) -> str:
    data = summary.to_dict()
    lines = [
        f"As of: {data['as_of_date']}",
        f"Invoices found: {data['invoices_found']}",
        f"Invoices mapped: {data['invoices_mapped']}",
        f"Rows skipped: {data['rows_skipped']}",
        "Customers sent: {sent}, dry run: {dry_run}, skipped: {skipped}, failed: {failed}".format(
            **data["customers"]
        ),
    ]
    problems = [r for r in summary.notify_results if r.status in (Status.SKIPPED, Status.FAILED)]
    if problems:
        lines.append("")
        lines.append("Details:")
        for r in problems:
            lines.append(f"Customer {r.customer_name} ({r.customer_id}): {r.status.value} - {r.reason}")
    return "\n".join(lines)


def summarize(
    summary: BatchSummary,
    mailer: Optional[SMTPMailer],
    settings: ReminderSettings,
) -> None:
    """Log the run totals and mail them to REMINDER_SUMMARY_EMAIL when it is set."""
    data = summary.to_dict()
    logger.info(
        "Job Results: found=%s mapped=%s skipped_rows=%s customers=%s",
        data["invoices_found"],
        data["invoices_mapped"],
        data["rows_skipped"],
        data["customers"],
    )

    email_to = settings.summary_email.strip()
    if not email_to:
        return
    if not EMAIL_PATTERN.match(email_to):
        logger.error("Invalid summary email address: %s", email_to)
        return
    if settings.dry_run or mailer is None:
        logger.info("Summary email to %s not sent (dry run)", email_to)
        return
    if not settings.admin_email:
        logger.error("Summary email to %s not sent: REMINDER_ADMIN_EMAIL is not set", email_to)
        return

    try:
        mailer.send(
            sender=settings.admin_email,
            recipient=email_to,
            subject=SUMMARY_SUBJECT,
            body=_summary_body(summary),
        )
        logger.info("Summary email sent to %s", email_to)
    except Exception:
        logger.exception("Summarize Error: summary email to %s failed", email_to)


def run_overdue_reminders(
    client: NetSuiteClient,
    mailer: Optional[SMTPMailer],
    settings: ReminderSettings,
    as_of_date: Optional[date] = None,
) -> BatchSummary:
    """
    One batch run: query -> map -> group -> notify (thread pool) -> summarize.
    Only a failed query raises.
    """
    if as_of_date is None:
        as_of_date = date.today()

    summary = BatchSummary(as_of_date=as_of_date)

    rows = get_input_data(client, as_of_date)
    summary.invoices_found = len(rows)
    logger.info("Found %d overdue invoices as of %s", len(rows), as_of_date)

    summary.map_results = [map_invoice(row) for row in rows]
    groups = group_by_customer(summary.map_results)
    logger.info("Notifying %d customers", len(groups))

    with ThreadPoolExecutor(max_workers=settings.max_workers) as pool:
        futures = [
            pool.submit(reduce_customer, client, mailer, settings, customer_id, values)
            for customer_id, values in groups.items()
        ]
        summary.notify_results = [f.result() for f in futures]

    summarize(summary, mailer, settings)
    return summary


def preview_overdue_reminders(
    client: NetSuiteClient,
    as_of_date: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Read-only view of what the next run would send: no lookups, files or mail.
    """
    if as_of_date is None:
        as_of_date = date.today()

    rows = get_input_data(client, as_of_date)
    results = [map_invoice(row) for row in rows]
    groups = group_by_customer(results)

    customers = []
    for customer_id, values in groups.items():
        aggregate = CustomerAggregate.from_values(customer_id, values)
        customers.append({
            "customer_id": customer_id,
            "customer_name": aggregate.customer_name,
            "sales_rep_id": aggregate.sales_rep_id,
            "invoice_count": len(aggregate.invoices),
            "overdue_total": round(sum(i.amount for i in aggregate.invoices), 2),
            "invoices": [
                {
                    "invoice_number": i.invoice_number,
                    "amount": i.amount,
                    "due_date": i.due_date.isoformat(),
                    "days_overdue": i.days_overdue,
                }
                for i in aggregate.invoices
            ],
        })

    return {
        "as_of_date": as_of_date.isoformat(),
        "invoices_found": len(rows),
        "rows_skipped": sum(1 for r in results if r.status == Status.SKIPPED),
        "customers": customers,
    }
