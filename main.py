import json
import logging

from log_setup import configure_logging
from mailer import SMTPMailer
from netsuite_client import NetSuiteClient
from overdue_reminders import run_overdue_reminders
from settings import load_settings

logger = logging.getLogger(__name__)


def main():
    """
    Entry point for the scheduled batch (cron / task scheduler).
    Runs one overdue-invoice reminder batch for today.
    """
    configure_logging()

    settings = load_settings()
    client = NetSuiteClient()
    mailer = SMTPMailer(settings.smtp)

    logger.info("Overdue invoice reminder run starting (dry_run=%s)", settings.dry_run)
    summary = run_overdue_reminders(client, mailer, settings)

    data = summary.to_dict()
    data.pop("results")
    print(json.dumps(data, indent=2))


if __name__ == "__main__":
    main()
