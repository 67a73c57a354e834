"""HTTP backend for tasks - POSTs tasks to the worker service.

Worker endpoints verify either a Google-signed OIDC ID token or, in
local dev, the shared X-Internal-Task-Secret header.
"""

import os
from datetime import datetime

import requests
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GoogleRequest
from google.oauth2.id_token import fetch_id_token

from siargao_rides.observability.logging import get_logger
from siargao_rides.observability.redaction import safe_log_context

logger = get_logger(__name__)

WORKER_BASE_URL = os.environ.get("WORKER_BASE_URL", "http://worker:8000")
HTTP_TIMEOUT = int(os.environ.get("TASKS_HTTP_TIMEOUT", "10"))

# Must match task_auth.LOCAL_DEV_AUDIENCE
_LOCAL_DEV_AUDIENCE = "siargao-rides-tasks-local"


def _fetch_oidc_token(audience: str) -> str | None:
    """Fetch a GCP ID token for `audience` from the metadata server / ADC."""
    try:
        return fetch_id_token(GoogleRequest(), audience)
    except GoogleAuthError as e:
        logger.error(
            "failed to fetch OIDC ID token",
            extra={"extra_fields": safe_log_context(audience=audience, error=str(e))},
        )
        return None


def _auth_headers() -> dict[str, str] | None:
    if os.environ.get("TASKS_OIDC_AUDIENCE", "") == _LOCAL_DEV_AUDIENCE:
        secret = os.environ.get("INTERNAL_TASK_SECRET", "")
        return {"X-Internal-Task-Secret": secret} if secret else {}

    token = _fetch_oidc_token(WORKER_BASE_URL)
    if not token:
        return None
    return {"Authorization": f"Bearer {token}"}


def enqueue_http(
    task_id: str,
    url_path: str,
    payload: dict,
    correlation_id: str | None = None,
    schedule_time: datetime | None = None,
) -> bool:
    """POST a task to the worker.

    Scheduling is not supported over plain HTTP: scheduled tasks are
    logged and dropped (the sweep is periodic, so nothing here depends
    on delayed delivery).

    Returns:
        True if the worker answered 2xx, False otherwise.
    """
    if schedule_time is not None:
        logger.warning(
            "HTTP backend does not support scheduled tasks",
            extra={"extra_fields": safe_log_context(task_id=task_id)},
        )
        return False

    auth = _auth_headers()
    if auth is None:
        logger.error(
            "HTTP task enqueue aborted: OIDC token unavailable",
            extra={"extra_fields": safe_log_context(task_id=task_id, url_path=url_path)},
        )
        return False

    headers = {
        "Content-Type": "application/json",
        "X-Correlation-ID": correlation_id or "",
        "X-Task-Id": task_id,
        **auth,
    }

    url = f"{WORKER_BASE_URL}{url_path}"
    try:
        response = requests.post(url, json=payload, headers=headers, timeout=HTTP_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error(
            "HTTP task enqueue failed",
            extra={"extra_fields": safe_log_context(task_id=task_id, url_path=url_path, error=str(e))},
        )
        return False

    logger.info(
        "HTTP task enqueued",
        extra={"extra_fields": safe_log_context(task_id=task_id, url_path=url_path)},
    )
    return True
