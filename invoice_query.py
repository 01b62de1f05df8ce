import logging
from datetime import date, timedelta
from typing import Any, Dict, Iterator, Optional

from netsuite_client import NetSuiteClient, SUITEQL_MAX_LIMIT

logger = logging.getLogger(__name__)


def last_month_end(as_of_date: date) -> date:
    """Last calendar day of the month before as_of_date (NetSuite's 'lastmonth' boundary)."""
    return as_of_date.replace(day=1) - timedelta(days=1)


def build_overdue_invoice_query(as_of_date: date) -> str:
    """
    Open invoices (main line only) due on or before the end of last month.
    days_overdue is computed by NetSuite as as_of_date - duedate.
    """
    boundary = last_month_end(as_of_date)

    return f"""
    SELECT
        t.id                                  AS invoice_id,
        t.tranid                              AS invoice_number,
        t.entity                              AS customer_id,
        BUILTIN.DF(t.entity)                  AS customer_name,
        t.foreigntotal                        AS amount,
        TO_CHAR(t.duedate, 'YYYY-MM-DD')      AS due_date,
        t.employee                            AS sales_rep_id,
        (TO_DATE('{as_of_date.isoformat()}', 'YYYY-MM-DD') - t.duedate) AS days_overdue
    FROM transaction t
    JOIN transactionline tl
        ON tl.transaction = t.id
        AND tl.mainline = 'T'
    WHERE
        t.type = 'CustInvc'
        AND t.status = 'A'
        AND t.duedate <= TO_DATE('{boundary.isoformat()}', 'YYYY-MM-DD')
    ORDER BY
        t.entity, t.duedate, t.id
    """


def iter_overdue_invoices(
    client: NetSuiteClient,
    as_of_date: Optional[date] = None,
    page_size: int = SUITEQL_MAX_LIMIT,
) -> Iterator[Dict[str, Any]]:
    """
    Lazily yield overdue invoice rows, logging each one for visibility.
    Errors are not caught here: a failed query is fatal to the batch.
    """
    if as_of_date is None:
        as_of_date = date.today()

    query = build_overdue_invoice_query(as_of_date)
    logger.debug("Overdue invoice search as of %s (due on or before %s)", as_of_date, last_month_end(as_of_date))

    for row in client.iter_suiteql(query, page_size=page_size):
        logger.debug(
            "Search Result: Customer: %s, Invoice: %s, Amount: %s, Due: %s, Days Overdue: %s",
            row.get("customer_name"),
            row.get("invoice_number"),
            row.get("amount"),
            row.get("due_date"),
            row.get("days_overdue"),
        )
        yield row
