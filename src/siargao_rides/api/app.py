"""ASGI entrypoint: `uvicorn siargao_rides.api.app:app` (role from APP_ROLE)."""

from siargao_rides.api.factory import create_app

app = create_app()
