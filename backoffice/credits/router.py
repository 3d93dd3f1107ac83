### backoffice/credits/router.py

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from backoffice.audit.hooks import PostCommitHook
from backoffice.core.db import get_db
from backoffice.core.dependencies import get_actor_id, get_post_commit_hooks
from backoffice.credits.schemas import (
    ApplyCreditRequest,
    CreditApplicationResult,
    CustomerCreditsResponse,
)
from backoffice.credits.services import CreditService
from backoffice.ledger.exceptions import (
    ConcurrencyConflictError,
    InvalidArgumentError,
    InvalidOperationError,
    NotFoundError,
)
from backoffice.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/payments", tags=["Customer Credits"])


def get_credit_service(
    db: Session = Depends(get_db),
    hooks: List[PostCommitHook] = Depends(get_post_commit_hooks),
) -> CreditService:
    return CreditService(db, post_commit_hooks=hooks)


@router.post("/credits/apply", response_model=CreditApplicationResult, summary="Apply Customer Credit")
def apply_credit(
    request: ApplyCreditRequest,
    credit_service: CreditService = Depends(get_credit_service),
    actor_id: str = Depends(get_actor_id),
):
    """
    Applies an amount from an active customer credit to one of the same
    customer's open invoices. The amount must fit both the credit's available
    amount and the invoice balance; nothing is clamped.
    """
    try:
        return credit_service.apply_credit(request, actor_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except InvalidArgumentError as e:
        logger.warning("Validation error in apply_credit: %s", e)
        raise HTTPException(status_code=422, detail=str(e)) from e
    except InvalidOperationError as e:
        logger.warning("Operation error in apply_credit: %s", e)
        raise HTTPException(status_code=409, detail=str(e)) from e
    except ConcurrencyConflictError as e:
        logger.warning("Conflict in apply_credit: %s", e)
        raise HTTPException(status_code=503, detail=str(e), headers={"Retry-After": "1"}) from e
    except Exception as e:
        logger.error("Error applying credit %s: %s", request.credit_id, e, exc_info=True)
        raise HTTPException(
            status_code=500, detail="An error occurred while applying the credit."
        ) from e


@router.get(
    "/customers/{customer_id}/credits",
    response_model=CustomerCreditsResponse,
    summary="List Customer Credits",
)
def get_customer_credits(
    customer_id: int,
    active_only: bool = Query(True, description="Only credits with money still available"),
    credit_service: CreditService = Depends(get_credit_service),
):
    try:
        return credit_service.get_customer_credits(customer_id, active_only=active_only)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except Exception as e:
        logger.error("Error fetching credits for customer %s: %s", customer_id, e, exc_info=True)
        raise HTTPException(
            status_code=500, detail="An error occurred while fetching customer credits."
        ) from e
