"""ASGI entry point: ``hypercorn pagecraft.asgi:app``."""

from pagecraft.app_factory import create_app

app = create_app()
