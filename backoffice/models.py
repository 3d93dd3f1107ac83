# backoffice/models.py

# Import all models so they are registered with SQLAlchemy before any
# mapper is configured (relationships are declared by class name).
import backoffice.audit.models  # noqa: F401
import backoffice.credits.models  # noqa: F401
import backoffice.customers.models  # noqa: F401
import backoffice.invoices.models  # noqa: F401
import backoffice.payments.models  # noqa: F401
from backoffice.core.db import Base

metadata = Base.metadata
