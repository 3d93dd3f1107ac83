### backoffice/main.py

"""
FastAPI application for the payment allocation and customer ledger engine.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Register every model before the first mapper is configured
import backoffice.models  # noqa: F401
# Celery app must exist so shared_task .delay() binds to the configured broker
import backoffice.worker.app  # noqa: F401
from backoffice.core.config import settings
from backoffice.credits.router import router as credits_routes
from backoffice.customers.router import router as customer_routes
from backoffice.invoices.router import router as invoice_routes
from backoffice.ledger.router import router as ledger_routes
from backoffice.payments.router import router as payment_routes
from backoffice.utils.logger import configure_logging, get_logger

configure_logging(settings.log_level, settings.log_format)
logger = get_logger(__name__)

app = FastAPI(
    title="Backoffice Ledger API",
    description="Customer payment allocation, credits and ledger reconstruction",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(customer_routes)
app.include_router(invoice_routes)
app.include_router(credits_routes)
app.include_router(payment_routes)
app.include_router(ledger_routes)


@app.get("/health", tags=["Health"])
def health_check():
    return {"status": "ok", "environment": settings.environment}


logger.info("Application initialised", environment=settings.environment)
