import os

SERVICE_NAME = "scheduling-service"

SCHEDULING_DB = os.getenv("SCHEDULING_DB")
REDIS_URL = os.getenv("REDIS_URL")
RABBIT_URL = os.getenv("RABBIT_URL")  # optional; events and notifications are disabled without it

IDENTITY_SERVICE_URL = os.getenv("IDENTITY_SERVICE_URL") or "http://identity-service:8000"
MESSAGING_SERVICE_URL = os.getenv("MESSAGING_SERVICE_URL") or "http://messaging-service:8000"
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS") or "3.0")

PROVIDER_ROLE = (os.getenv("PROVIDER_ROLE") or "provider").lower()

DEFAULT_SLOT_DURATION_MINUTES = int(os.getenv("DEFAULT_SLOT_DURATION_MINUTES") or "60")
DEFAULT_BUFFER_MINUTES = int(os.getenv("DEFAULT_BUFFER_MINUTES") or "0")
MIN_SLOT_DURATION_MINUTES = 15
MAX_SLOT_DURATION_MINUTES = 240
MAX_BUFFER_MINUTES = 60
MAX_SLOT_RANGE_DAYS = int(os.getenv("MAX_SLOT_RANGE_DAYS") or "62")

WORKER_ENABLED = (os.getenv("WORKER_ENABLED") or "true").lower() in ("1", "true", "yes")
WORKER_POLL_SECONDS = float(os.getenv("WORKER_POLL_SECONDS") or "2.0")
JOB_VISIBILITY_SECONDS = int(os.getenv("JOB_VISIBILITY_SECONDS") or "60")
JOB_MAX_ATTEMPTS = int(os.getenv("JOB_MAX_ATTEMPTS") or "5")
JOB_RETRY_SECONDS = int(os.getenv("JOB_RETRY_SECONDS") or "30")

LOG_LEVEL = (os.getenv("LOG_LEVEL") or "INFO").upper()
