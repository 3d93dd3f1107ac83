### backoffice/scripts/initialize_balances.py

"""
Operator utility: backfill invoice balances from their payment and credit
applications.

    python -m backoffice.scripts.initialize_balances [--actor ops-user]
"""

import argparse
import sys

import backoffice.models  # noqa: F401
from backoffice.core.config import settings
from backoffice.core.db import SessionLocal
from backoffice.invoices.services import SYSTEM_ACTOR, InvoiceService
from backoffice.ledger.exceptions import LedgerError
from backoffice.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)


def initialize_balances(actor_id: str) -> int:
    db = SessionLocal()
    try:
        result = InvoiceService(db).initialize_balances(actor_id)
    finally:
        db.close()

    logger.info(
        "✅ Balance initialization finished",
        updated_count=result.updated_count,
        skipped_invoice_ids=result.skipped_invoice_ids,
    )
    return result.updated_count


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Backfill invoice balances")
    parser.add_argument(
        "--actor",
        default=SYSTEM_ACTOR,
        help="Actor id recorded as modified_by on corrected invoices",
    )
    args = parser.parse_args()

    configure_logging(settings.log_level, settings.log_format)

    try:
        initialize_balances(args.actor)
    except LedgerError as e:
        logger.error("❌ Balance initialization failed: %s", e)
        sys.exit(1)
