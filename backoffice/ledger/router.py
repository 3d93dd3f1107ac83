### backoffice/ledger/router.py

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from backoffice.core.db import get_db
from backoffice.ledger.exceptions import InvalidArgumentError, NotFoundError
from backoffice.ledger.schemas import CustomerLedger
from backoffice.ledger.services import LedgerService
from backoffice.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/ledger", tags=["Customer Ledger"])


def get_ledger_service(db: Session = Depends(get_db)) -> LedgerService:
    return LedgerService(db)


@router.get("/customers/{customer_id}", response_model=CustomerLedger, summary="Customer Ledger")
def get_customer_ledger(
    customer_id: int,
    start_date: Optional[date] = Query(None, description="First day included"),
    end_date: Optional[date] = Query(None, description="Last day included"),
    ledger_service: LedgerService = Depends(get_ledger_service),
):
    """
    Chronological statement of invoices, payment applications and credit
    applications with a running balance. Read-only.
    """
    try:
        return ledger_service.get_ledger(customer_id, start_date=start_date, end_date=end_date)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except InvalidArgumentError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except Exception as e:
        logger.error("Error building ledger for customer %s: %s", customer_id, e, exc_info=True)
        raise HTTPException(
            status_code=500, detail="An error occurred while building the ledger."
        ) from e
