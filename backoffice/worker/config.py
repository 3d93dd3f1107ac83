### backoffice/worker/config.py

"""
Celery configuration settings: broker and result backend, serialization,
timezone and delivery guarantees for audit tasks.
"""

# Local imports
from backoffice.core.config import settings

# Broker and result backend configurations
broker_url = settings.celery_broker
result_backend = settings.celery_backend

# Task serialization
task_serializer = "json"
accept_content = ["json"]
result_serializer = "json"
timezone = "UTC"
enable_utc = True

# Task settings
task_track_started = True
task_time_limit = 5 * 60
task_soft_time_limit = 4 * 60
worker_prefetch_multiplier = 1
# Audit records must not be lost if a worker dies mid-task
task_acks_late = True
task_reject_on_worker_lost = True

broker_connection_retry_on_startup = True
broker_connection_retry = True
broker_connection_max_retries = 10
