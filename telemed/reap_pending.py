"""Cancel unpaid appointments older than PENDING_PAYMENT_TTL_HOURS.

Usage:
    python -m telemed.reap_pending
"""
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from telemed.core.config import build_scheduling_config
from telemed.database import SessionLocal
from telemed.models import appointment, doctor, feedback, invoice, payment, prescription, schedule, user  # noqa: F401
from telemed.services.appointments import expire_stale_pending

logger = logging.getLogger(__name__)


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    settings = build_scheduling_config()

    db = SessionLocal()
    try:
        expired = expire_stale_pending(db, settings)
    except SQLAlchemyError:
        db.rollback()
        logger.exception('Expiring stale appointments failed.')
        sys.exit(1)
    finally:
        db.close()

    print(f"Expired {expired} stale pending-payment appointment(s).")


if __name__ == "__main__":
    main()
