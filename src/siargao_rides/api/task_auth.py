"""Authentication for worker task endpoints.

Task requests carry a Google-signed OIDC token (Cloud Scheduler for the
sweep, the tasks http backend for everything else). Local development may
use the X-Internal-Task-Secret header instead, and only when the
configured audience is the local one.
"""

from __future__ import annotations

import base64
import json
import os

from fastapi import Request
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from siargao_rides.observability.logging import get_logger
from siargao_rides.observability.redaction import safe_log_context

logger = get_logger(__name__)

LOCAL_DEV_AUDIENCE = "siargao-rides-tasks-local"
INTERNAL_SECRET_HEADER = "X-Internal-Task-Secret"


def _reject(message: str, *, level: str = "warning", **context) -> bool:
    getattr(logger, level)(message, extra={"extra_fields": safe_log_context(**context)})
    return False


def _unverified_audience(token: str) -> str | None:
    """`aud` of a token that already failed verification (diagnostics only)."""
    try:
        segment = token.split(".")[1]
        segment += "=" * (-len(segment) % 4)
        value = json.loads(base64.urlsafe_b64decode(segment)).get("aud")
    except (IndexError, ValueError):
        return None
    return None if value is None else str(value)


def extract_bearer_token(request: Request) -> str | None:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme != "Bearer":
        return None
    return token


def _local_secret_ok(request: Request) -> bool:
    if os.environ.get("TASKS_OIDC_AUDIENCE", "") != LOCAL_DEV_AUDIENCE:
        return False
    secret = os.environ.get("INTERNAL_TASK_SECRET", "")
    return bool(secret) and request.headers.get(INTERNAL_SECRET_HEADER, "") == secret


def verify_task_oidc(token: str) -> bool:
    """Verify a Google-signed OIDC token against TASKS_OIDC_AUDIENCE.

    Fails closed when the audience is not configured. When
    TASKS_OIDC_SERVICE_ACCOUNT is set, the token's email must match it.
    """
    if not token:
        return False

    audience = os.environ.get("TASKS_OIDC_AUDIENCE")
    if not audience:
        return _reject("task auth not configured, rejecting", level="error", reason="missing_audience_env")

    try:
        claims = id_token.verify_oauth2_token(token, google_requests.Request(), audience=audience)
    except ValueError as exc:
        return _reject(
            "task OIDC verification failed",
            error=str(exc),
            expected_audience=audience,
            received_audience=_unverified_audience(token),
        )

    service_account = os.environ.get("TASKS_OIDC_SERVICE_ACCOUNT")
    caller = claims.get("email", "")
    if service_account and caller != service_account:
        return _reject("task OIDC caller is not the configured service account", reason="sa_mismatch")
    return True


def verify_task_auth(request: Request) -> bool:
    """OIDC, or the internal secret when running with the local audience."""
    if _local_secret_ok(request):
        return True

    token = extract_bearer_token(request)
    if not token:
        return _reject("task auth failed: missing Bearer token", reason="missing_bearer_token")
    return verify_task_oidc(token)
