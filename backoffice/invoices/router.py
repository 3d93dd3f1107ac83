### backoffice/invoices/router.py

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from backoffice.core.db import get_db
from backoffice.core.dependencies import get_actor_id
from backoffice.invoices.schemas import (
    BalanceInitializationResult,
    InvoiceCreateRequest,
    InvoiceResponse,
)
from backoffice.invoices.services import InvoiceService
from backoffice.ledger.exceptions import (
    ConcurrencyConflictError,
    InvalidArgumentError,
    InvalidOperationError,
    NotFoundError,
)
from backoffice.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/invoices", tags=["Invoices"])


def get_invoice_service(db: Session = Depends(get_db)) -> InvoiceService:
    return InvoiceService(db)


@router.post(
    "",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Invoice",
)
def create_invoice(
    request: InvoiceCreateRequest,
    invoice_service: InvoiceService = Depends(get_invoice_service),
    actor_id: str = Depends(get_actor_id),
):
    try:
        return invoice_service.create_invoice(request, actor_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except InvalidArgumentError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except InvalidOperationError as e:
        logger.warning("Operation error in create_invoice: %s", e)
        raise HTTPException(status_code=409, detail=str(e)) from e
    except ConcurrencyConflictError as e:
        logger.warning("Conflict in create_invoice: %s", e)
        raise HTTPException(status_code=503, detail=str(e), headers={"Retry-After": "1"}) from e
    except Exception as e:
        logger.error("Error creating invoice %s: %s", request.invoice_number, e, exc_info=True)
        raise HTTPException(
            status_code=500, detail="An error occurred while creating the invoice."
        ) from e


@router.post(
    "/initialize-balances",
    response_model=BalanceInitializationResult,
    summary="Backfill Invoice Balances",
)
def initialize_balances(
    invoice_service: InvoiceService = Depends(get_invoice_service),
    actor_id: str = Depends(get_actor_id),
):
    """
    Operator utility: recomputes every invoice balance as total minus
    applications and rewrites rows that disagree. Safe to run repeatedly.
    """
    try:
        return invoice_service.initialize_balances(actor_id)
    except ConcurrencyConflictError as e:
        raise HTTPException(status_code=503, detail=str(e), headers={"Retry-After": "1"}) from e
    except Exception as e:
        logger.error("Error initializing invoice balances: %s", e, exc_info=True)
        raise HTTPException(
            status_code=500, detail="An error occurred while initializing invoice balances."
        ) from e


@router.get("/{invoice_id}", response_model=InvoiceResponse, summary="Get Invoice")
def get_invoice(
    invoice_id: int,
    invoice_service: InvoiceService = Depends(get_invoice_service),
):
    try:
        return invoice_service.get_invoice(invoice_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
