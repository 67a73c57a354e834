"""Shared pytest fixtures for Siargao Rides engine tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_oidc_jwks_cache():
    """The JWKS cache is process-wide; a key set cached by one test must not
    leak into the next test's freshly generated key pair."""
    import siargao_rides.api.auth as auth_module

    auth_module._jwks.clear()
    yield
    auth_module._jwks.clear()


@pytest.fixture(autouse=True)
def _reset_engine_settings():
    """Settings are cached per process; tests that patch env need a fresh read."""
    from siargao_rides.infra.settings import reset_settings

    reset_settings()
    yield
    reset_settings()
