"""Configuration and settings."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Paths
PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = Path(os.getenv("DATA_DIR", str(PROJECT_ROOT / "data")))
OUTPUT_DIR = Path(os.getenv("OUTPUT_DIR", str(PROJECT_ROOT / "output")))

# Logging
LOG_DIR = OUTPUT_DIR / "logs"
LOG_FILE = Path(os.getenv("LOG_FILE", str(LOG_DIR / "app.jsonl")))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
VERBOSE_LOGGING = os.getenv("VERBOSE_LOGGING", "false").lower() == "true"

# OpenTelemetry
TRACING_ENABLED = os.getenv("TRACING_ENABLED", "false").lower() == "true"
OTEL_EXPORTER_OTLP_ENDPOINT = os.getenv(
    "OTEL_EXPORTER_OTLP_ENDPOINT",
    "http://localhost:4318/v1/traces",
)
OTEL_SERVICE_NAME = os.getenv("OTEL_SERVICE_NAME", "teams-transcript-trigger")
OTEL_API_KEY = os.getenv("OTEL_API_KEY", "")
DEPLOYMENT_ENVIRONMENT = os.getenv("DEPLOYMENT_ENVIRONMENT", "development")

# Graph API (application credential: client credentials grant)
GRAPH_BASE_URL = os.getenv("GRAPH_BASE_URL", "https://graph.microsoft.com/v1.0").rstrip("/")
GRAPH_PAGE_SIZE = int(os.getenv("GRAPH_PAGE_SIZE", "100"))
GRAPH_TIMEOUT_SECONDS = float(os.getenv("GRAPH_TIMEOUT_SECONDS", "30"))
AZURE_TENANT_ID = os.getenv("AZURE_TENANT_ID", "")
AZURE_CLIENT_ID = os.getenv("AZURE_CLIENT_ID", "")
AZURE_CLIENT_SECRET = os.getenv("AZURE_CLIENT_SECRET", "")

# Webhook (Graph change notifications)
WEBHOOK_PORT = int(os.getenv("WEBHOOK_PORT", "8000"))
WEBHOOK_URL = os.getenv("WEBHOOK_URL", "").rstrip("/")
WEBHOOK_PATH = "/webhook"
WEBHOOK_CLIENT_STATE = os.getenv("WEBHOOK_CLIENT_STATE", "teams-transcript-webhook-secret")
WEBHOOK_VERIFY_CLIENT_STATE = os.getenv("WEBHOOK_VERIFY_CLIENT_STATE", "false").lower() == "true"
# Seconds to wait after startup before activating subscriptions (server must be listening)
WEBHOOK_ACTIVATION_DELAY_SECONDS = float(os.getenv("WEBHOOK_ACTIVATION_DELAY_SECONDS", "3"))

# Subscription lease policy.
# 1008 minutes is the working maximum applied to every resource type.
SUBSCRIPTION_LEASE_MINUTES = int(os.getenv("SUBSCRIPTION_LEASE_MINUTES", "1008"))
LIFECYCLE_URL_THRESHOLD_MINUTES = int(os.getenv("LIFECYCLE_URL_THRESHOLD_MINUTES", "60"))
SUBSCRIPTION_EXPIRY_MARGIN_MINUTES = int(os.getenv("SUBSCRIPTION_EXPIRY_MARGIN_MINUTES", "5"))

# Persisted subscription ids per webhook registration
STATE_STORE_PATH = Path(os.getenv("STATE_STORE_PATH", str(DATA_DIR / "subscription_state.json")))

# Trigger selection
TRIGGER_EVENT = os.getenv("TRIGGER_EVENT", "newTranscript")
WATCH_ALL_MEETINGS = os.getenv("WATCH_ALL_MEETINGS", "true").lower() == "true"
MEETING_ID = os.getenv("MEETING_ID", "")
USER_ID = os.getenv("USER_ID", "")

# Downstream dispatch (bounded queue + worker pool); one execution per change event.
EVENT_FORWARD_URL = os.getenv("EVENT_FORWARD_URL", "").strip()
WEBHOOK_QUEUE_MAX = int(os.getenv("WEBHOOK_QUEUE_MAX", "200"))
WEBHOOK_WORKER_COUNT = int(os.getenv("WEBHOOK_WORKER_COUNT", "4"))


def notification_url(base_url: str | None = None) -> str:
    """Public notification URL Graph posts to (WEBHOOK_URL + /webhook)."""
    base = (base_url if base_url is not None else WEBHOOK_URL).rstrip("/")
    if not base:
        return ""
    return f"{base}{WEBHOOK_PATH}"
