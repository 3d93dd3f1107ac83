### backoffice/payments/router.py

import math
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from backoffice.audit.hooks import PostCommitHook
from backoffice.core.db import get_db
from backoffice.core.dependencies import get_actor_id, get_post_commit_hooks
from backoffice.ledger.exceptions import (
    ConcurrencyConflictError,
    InvalidArgumentError,
    InvalidOperationError,
    NotFoundError,
)
from backoffice.payments.models import PaymentMethod
from backoffice.payments.schemas import (
    AllocationPreview,
    AllocationPreviewRequest,
    AllocationResult,
    CustomerPaymentResponse,
    OpenInvoicesResponse,
    PaginatedCustomerPaymentResponse,
    PaginatedOutstandingInvoiceResponse,
    PaginatedRecentPaymentResponse,
    PaymentMethodOption,
    PaymentSummaryResponse,
    RecordPaymentRequest,
)
from backoffice.payments.services import PaymentService
from backoffice.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/payments", tags=["Customer Payments"])


# Dependency to inject the PaymentService
def get_payment_service(
    db: Session = Depends(get_db),
    hooks: List[PostCommitHook] = Depends(get_post_commit_hooks),
) -> PaymentService:
    """Provides an instance of PaymentService with the current DB session."""
    return PaymentService(db, post_commit_hooks=hooks)


@router.post(
    "/record",
    response_model=AllocationResult,
    status_code=status.HTTP_201_CREATED,
    summary="Record a Customer Payment",
)
def record_payment(
    request: RecordPaymentRequest,
    payment_service: PaymentService = Depends(get_payment_service),
    actor_id: str = Depends(get_actor_id),
):
    """
    Records a payment and allocates it to the customer's open invoices,
    oldest due date first. Any amount left over is held as a customer credit.
    The response states how much was allocated and how much was credited.
    """
    try:
        return payment_service.allocate(request, actor_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except InvalidArgumentError as e:
        logger.warning("Validation error in record_payment: %s", e)
        raise HTTPException(status_code=422, detail=str(e)) from e
    except InvalidOperationError as e:
        logger.warning("Operation error in record_payment: %s", e)
        raise HTTPException(status_code=409, detail=str(e)) from e
    except ConcurrencyConflictError as e:
        logger.warning("Conflict in record_payment: %s", e)
        raise HTTPException(status_code=503, detail=str(e), headers={"Retry-After": "1"}) from e
    except Exception as e:
        logger.error("Error recording payment for customer %s: %s", request.customer_id, e, exc_info=True)
        raise HTTPException(
            status_code=500, detail="An error occurred while recording the payment."
        ) from e


@router.post(
    "/customers/{customer_id}/preview",
    response_model=AllocationPreview,
    summary="Preview Payment Allocation",
)
def preview_allocation(
    customer_id: int,
    request: AllocationPreviewRequest,
    payment_service: PaymentService = Depends(get_payment_service),
):
    """
    Shows how an amount would be allocated without recording anything.
    """
    try:
        return payment_service.preview_allocation(customer_id, request)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except InvalidArgumentError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except InvalidOperationError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except Exception as e:
        logger.error("Error previewing allocation for customer %s: %s", customer_id, e, exc_info=True)
        raise HTTPException(
            status_code=500, detail="An error occurred while previewing the allocation."
        ) from e


@router.get(
    "/customers/{customer_id}/open-invoices",
    response_model=OpenInvoicesResponse,
    summary="List Open Invoices",
)
def get_open_invoices(
    customer_id: int,
    payment_service: PaymentService = Depends(get_payment_service),
):
    """Open invoices in the order a payment would settle them."""
    try:
        return payment_service.get_open_invoices(customer_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except Exception as e:
        logger.error("Error fetching open invoices for customer %s: %s", customer_id, e, exc_info=True)
        raise HTTPException(
            status_code=500, detail="An error occurred while fetching open invoices."
        ) from e


@router.get(
    "/customers/{customer_id}/payments",
    response_model=PaginatedCustomerPaymentResponse,
    summary="Customer Payment History",
)
def get_customer_payments(
    customer_id: int,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=200),
    payment_service: PaymentService = Depends(get_payment_service),
):
    try:
        payments, total_items = payment_service.get_customer_payments(
            customer_id, page=page, per_page=per_page
        )
        return PaginatedCustomerPaymentResponse(
            items=[CustomerPaymentResponse.model_validate(p) for p in payments],
            total_items=total_items,
            page=page,
            per_page=per_page,
            total_pages=math.ceil(total_items / per_page) if per_page > 0 else 0,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except Exception as e:
        logger.error("Error fetching payments for customer %s: %s", customer_id, e, exc_info=True)
        raise HTTPException(
            status_code=500, detail="An error occurred while fetching payment history."
        ) from e


@router.get("/summary", response_model=PaymentSummaryResponse, summary="Payment Summary")
def get_payment_summary(
    payment_service: PaymentService = Depends(get_payment_service),
):
    """Payments received today and this month, outstanding balance and open credit."""
    try:
        return payment_service.get_payment_summary()
    except Exception as e:
        logger.error("Error building payment summary: %s", e, exc_info=True)
        raise HTTPException(
            status_code=500, detail="An error occurred while building the payment summary."
        ) from e


@router.get(
    "/payment-methods",
    response_model=List[PaymentMethodOption],
    summary="List Payment Methods",
)
def get_payment_methods(
    payment_service: PaymentService = Depends(get_payment_service),
):
    return payment_service.get_payment_methods()


@router.get(
    "/recent",
    response_model=PaginatedRecentPaymentResponse,
    summary="Recent Payments",
)
def get_recent_payments(
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=200),
    payment_method: Optional[PaymentMethod] = Query(None, description="Only this payment method"),
    search: Optional[str] = Query(None, description="Customer name, company name or reference"),
    payment_service: PaymentService = Depends(get_payment_service),
):
    """Payments across all customers, newest first, with their invoice applications."""
    try:
        items, total_items = payment_service.get_recent_payments(
            page=page, per_page=per_page, payment_method=payment_method, search=search
        )
        return PaginatedRecentPaymentResponse(
            items=items,
            total_items=total_items,
            page=page,
            per_page=per_page,
            total_pages=math.ceil(total_items / per_page) if per_page > 0 else 0,
        )
    except Exception as e:
        logger.error("Error fetching recent payments: %s", e, exc_info=True)
        raise HTTPException(
            status_code=500, detail="An error occurred while fetching recent payments."
        ) from e


@router.get(
    "/outstanding",
    response_model=PaginatedOutstandingInvoiceResponse,
    summary="Outstanding Invoices",
)
def get_outstanding_invoices(
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=200),
    search: Optional[str] = Query(None, description="Customer name, company name or invoice number"),
    payment_service: PaymentService = Depends(get_payment_service),
):
    """Invoices with a balance across all customers, in the order payments settle them."""
    try:
        items, total_items = payment_service.get_outstanding_invoices(
            page=page, per_page=per_page, search=search
        )
        return PaginatedOutstandingInvoiceResponse(
            items=items,
            total_items=total_items,
            page=page,
            per_page=per_page,
            total_pages=math.ceil(total_items / per_page) if per_page > 0 else 0,
        )
    except Exception as e:
        logger.error("Error fetching outstanding invoices: %s", e, exc_info=True)
        raise HTTPException(
            status_code=500, detail="An error occurred while fetching outstanding invoices."
        ) from e


@router.get(
    "/{payment_id}",
    response_model=CustomerPaymentResponse,
    summary="Get Payment Details",
)
def get_payment(
    payment_id: int,
    payment_service: PaymentService = Depends(get_payment_service),
):
    try:
        return payment_service.get_payment(payment_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except Exception as e:
        logger.error("Error fetching payment %s: %s", payment_id, e, exc_info=True)
        raise HTTPException(
            status_code=500, detail="An error occurred while fetching the payment."
        ) from e
