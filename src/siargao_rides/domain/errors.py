"""Typed errors surfaced by the availability and booking engine.

Callers branch on the class, never on the message:
- ValidationError / InvalidTransitionError: caller's fault, not retryable as-is
- NotFoundError: unknown vehicle, group or rental
- ConflictError: lost a race or the target is no longer free
- PriceMismatchError: client total disagrees with the server total
- AuthorizationError: ownership precondition failed
- TransientStoreError: store unavailable or timed out, retry with backoff
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for all engine errors."""

    retryable = False


class ValidationError(EngineError):
    """Malformed interval or inputs."""


class InvalidTransitionError(ValidationError):
    """Requested status change is not allowed from the current status."""

    def __init__(self, rental_id: str, current: str, target: str) -> None:
        self.rental_id = rental_id
        self.current = current
        self.target = target
        super().__init__(f"Rental {rental_id} cannot move from {current} to {target}")


class NotFoundError(EngineError):
    """Unknown vehicle, group or rental."""


class ConflictError(EngineError):
    """Target is no longer free for the requested dates."""

    retryable = True

    def __init__(
        self,
        message: str = "no longer available",
        *,
        vehicle_id: str | None = None,
        conflicting_rental_id: str | None = None,
    ) -> None:
        self.vehicle_id = vehicle_id
        self.conflicting_rental_id = conflicting_rental_id
        super().__init__(message)


class PriceMismatchError(EngineError):
    """Client-supplied total disagrees with the server-computed total."""

    def __init__(self, expected_cents: int, computed_cents: int) -> None:
        self.expected_cents = expected_cents
        self.computed_cents = computed_cents
        super().__init__(
            f"Price mismatch: client sent {expected_cents}, server computed {computed_cents}"
        )


class AuthorizationError(EngineError):
    """Caller does not own the vehicle, group or rental."""


class TransientStoreError(EngineError):
    """Backing store unavailable, timed out or aborted the transaction."""

    retryable = True
