"""Shared constants for Temporal workflows."""

from compliance_jobs.core.config import settings

# Task Queues
DEFAULT_TASK_QUEUE = settings.temporal.task_queue

# Orchestrator fan-out sizes
CLOUD_SCAN_BATCH_SIZE = settings.jobs.cloud_scan_batch_size
MANUAL_ANSWER_BATCH_SIZE = settings.jobs.manual_answer_batch_size
EMPLOYEE_SYNC_BATCH_SIZE = settings.jobs.employee_sync_batch_size

# Batches one orchestrator run handles before continuing as new
MAX_BATCHES_PER_RUN = settings.jobs.max_batches_per_run

# Notification rate limit
EMAIL_BATCH_SIZE = settings.email.batch_size
EMAIL_BATCH_DELAY_SECONDS = settings.email.batch_delay_seconds
