### backoffice/worker/app.py

"""
Main Celery Application Configuration

Sets up the Celery application instance that delivers post-commit audit
records. Broker and result backend come from settings.
"""

# Third party imports
from celery import Celery

# Import all models to ensure they're registered with SQLAlchemy
# This must happen before any database operations in tasks
import backoffice.models  # noqa: F401

# Create Celery Instance
app = Celery("backoffice")

# Configure celery from separate config file
app.config_from_object("backoffice.worker.config")

# Auto discover tasks.py modules
app.autodiscover_tasks(["backoffice.audit"])

if __name__ == "__main__":
    app.start()
