### backoffice/customers/router.py

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from backoffice.core.db import get_db
from backoffice.core.dependencies import get_actor_id
from backoffice.customers.schemas import CustomerCreateRequest, CustomerResponse
from backoffice.customers.services import CustomerService
from backoffice.invoices.schemas import InvoiceResponse
from backoffice.invoices.services import InvoiceService
from backoffice.ledger.exceptions import NotFoundError
from backoffice.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/customers", tags=["Customers"])


def get_customer_service(db: Session = Depends(get_db)) -> CustomerService:
    return CustomerService(db)


@router.post(
    "",
    response_model=CustomerResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Customer",
)
def create_customer(
    request: CustomerCreateRequest,
    customer_service: CustomerService = Depends(get_customer_service),
    actor_id: str = Depends(get_actor_id),
):
    try:
        return customer_service.create_customer(request, actor_id)
    except Exception as e:
        logger.error("Error creating customer: %s", e, exc_info=True)
        raise HTTPException(
            status_code=500, detail="An error occurred while creating the customer."
        ) from e


@router.get("/{customer_id}", response_model=CustomerResponse, summary="Get Customer")
def get_customer(
    customer_id: int,
    customer_service: CustomerService = Depends(get_customer_service),
):
    try:
        return customer_service.get_customer(customer_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.get(
    "/{customer_id}/invoices",
    response_model=List[InvoiceResponse],
    summary="List Customer Invoices",
)
def list_customer_invoices(
    customer_id: int,
    db: Session = Depends(get_db),
):
    try:
        return InvoiceService(db).list_customer_invoices(customer_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
