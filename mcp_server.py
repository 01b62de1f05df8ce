"""
MCP Server for NetSuite overdue invoice reminders

Exposes the reminder batch as MCP tools so an AI client
can inspect what will be sent and trigger a run.

Tools:
- overdue_invoice_preview(as_of_date)   read-only, nothing is written or sent
- run_overdue_reminders_tool(dry_run)   dry_run defaults to True
"""

from datetime import date
from typing import Optional

# FastMCP is a lightweight helper that makes it easy
# to create an MCP-compatible tool server
from mcp.server.fastmcp import FastMCP

from log_setup import configure_logging
from mailer import SMTPMailer
from netsuite_client import NetSuiteClient
from overdue_reminders import preview_overdue_reminders, run_overdue_reminders
from settings import load_settings

mcp = FastMCP("netsuite-overdue-reminders")

_client: Optional[NetSuiteClient] = None


def get_client() -> NetSuiteClient:
    # Built on first use so importing this module needs no credentials
    global _client
    if _client is None:
        _client = NetSuiteClient()
    return _client


def _parse_as_of(as_of_date: str) -> Optional[date]:
    return date.fromisoformat(as_of_date) if as_of_date else None


@mcp.tool()
def overdue_invoice_preview(as_of_date: str = "") -> dict:
    """
    MCP Tool: overdue_invoice_preview

    Show which customers would get a reminder and for which invoices.
    Nothing is written or sent.

    Parameters:
    - as_of_date (str): evaluation date YYYY-MM-DD (default = today)
    """
    return preview_overdue_reminders(get_client(), as_of_date=_parse_as_of(as_of_date))


@mcp.tool()
def run_overdue_reminders_tool(dry_run: bool = True, as_of_date: str = "") -> dict:
    """
    MCP Tool: run_overdue_reminders_tool

    Run the monthly reminder batch.
    SAFETY DEFAULT: dry_run=True writes the CSV files but sends no email.
    """
    settings = load_settings()
    settings.dry_run = dry_run or settings.dry_run

    summary = run_overdue_reminders(
        get_client(),
        SMTPMailer(settings.smtp),
        settings,
        as_of_date=_parse_as_of(as_of_date),
    )
    return summary.to_dict()


# Entry point when running this file directly
if __name__ == "__main__":
    configure_logging()
    # Start the MCP server over stdio
    mcp.run(transport="stdio")
