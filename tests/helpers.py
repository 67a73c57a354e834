"""Shared test helper functions for Siargao Rides engine tests.

This module contains helper functions that can be imported by both conftest.py
and individual test files. These are NOT fixtures - they are regular functions.
"""

from __future__ import annotations

import base64
import time
from contextlib import contextmanager
from datetime import date, datetime, timezone

import jwt
from cryptography.hazmat.primitives.asymmetric import rsa


def _generate_rsa_keypair():
    """Generate RSA key pair for test JWT signing."""
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
    )
    public_key = private_key.public_key()
    return private_key, public_key


def _create_jwks(public_key, kid: str = "test-key-1") -> dict:
    """Create JWKS from public key."""
    public_numbers = public_key.public_numbers()

    def int_to_base64(n: int) -> str:
        byte_length = (n.bit_length() + 7) // 8
        return (
            base64.urlsafe_b64encode(n.to_bytes(byte_length, "big"))
            .rstrip(b"=")
            .decode()
        )

    return {
        "keys": [
            {
                "kty": "RSA",
                "use": "sig",
                "alg": "RS256",
                "kid": kid,
                "n": int_to_base64(public_numbers.n),
                "e": int_to_base64(public_numbers.e),
            }
        ]
    }


def _create_token(
    private_key,
    kid: str = "test-key-1",
    sub: str = "user-123",
    iss: str = "https://clerk.example.com",
    aud: str = "siargao-rides-api",
    exp: int | None = None,
    azp: str | None = None,
) -> str:
    """Create signed JWT for testing."""
    now = int(time.time())
    payload = {
        "sub": sub,
        "iss": iss,
        "aud": aud,
        "exp": exp if exp is not None else now + 3600,
        "iat": now,
    }
    if azp:
        payload["azp"] = azp

    return jwt.encode(payload, private_key, algorithm="RS256", headers={"kid": kid})


def make_vehicle(
    vehicle_id: str = "veh-1",
    *,
    shop_id: str = "shop-1",
    name: str = "Honda Click 125",
    vehicle_type: str = "motorbike",
    category: str = "scooter",
    is_available: bool = True,
    price_per_day_cents: int = 50000,
    group_id: str | None = None,
    group_index: int | None = None,
    individual_identifier: str | None = None,
    is_group_primary: bool = False,
) -> dict:
    """Vehicle dict in vehicles_repository shape."""
    return {
        "id": vehicle_id,
        "shop_id": shop_id,
        "name": name,
        "vehicle_type": vehicle_type,
        "category": category,
        "is_available": is_available,
        "price_per_day_cents": price_per_day_cents,
        "group_id": group_id,
        "group_index": group_index,
        "individual_identifier": individual_identifier,
        "is_group_primary": is_group_primary,
    }


def make_rental(
    rental_id: str = "rental-1",
    *,
    vehicle_id: str = "veh-1",
    shop_id: str = "shop-1",
    user_id: str | None = "user-1",
    start_date: date = date(2025, 6, 10),
    end_date: date = date(2025, 6, 13),
    pickup_time: datetime | None = None,
    grace_period_minutes: int = 30,
    status: str = "pending",
    payment_status: str = "pending",
    deposit_required: bool = False,
    deposit_paid: bool = False,
    auto_cancel_override: bool = False,
    daily_rate_cents: int = 50000,
    idempotency_key: str | None = "key-1",
    requested_group_id: str | None = None,
) -> dict:
    """Rental dict in rentals_repository shape."""
    days = (end_date - start_date).days
    return {
        "id": rental_id,
        "vehicle_id": vehicle_id,
        "shop_id": shop_id,
        "user_id": user_id,
        "start_date": start_date,
        "end_date": end_date,
        "pickup_time": pickup_time or datetime(2025, 6, 10, 1, 0, tzinfo=timezone.utc),
        "grace_period_minutes": grace_period_minutes,
        "status": status,
        "payment_status": payment_status,
        "deposit_required": deposit_required,
        "deposit_paid": deposit_paid,
        "auto_cancel_override": auto_cancel_override,
        "daily_rate_cents": daily_rate_cents,
        "days": days,
        "total_cents": daily_rate_cents * days,
        "currency": "PHP",
        "idempotency_key": idempotency_key,
        "requested_group_id": requested_group_id,
        "created_at": datetime(2025, 6, 1, tzinfo=timezone.utc),
    }


class FakeTxn:
    """Stand-in for infra.db.txn: yields one MagicMock cursor, records use."""

    def __init__(self, cursor=None):
        from unittest.mock import MagicMock

        self.cursor = cursor if cursor is not None else MagicMock()
        self.calls: list[dict] = []

    @contextmanager
    def __call__(self, *args, **kwargs):
        self.calls.append(kwargs)
        yield self.cursor
