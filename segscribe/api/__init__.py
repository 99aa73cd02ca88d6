# segscribe/api/__init__.py
# ==========================
# API Layer: SegScribe
#
#   routes.py  FastAPI router under /api/whisper and the app factory

from segscribe.api.routes import create_app, router  # noqa: F401

__all__ = ["create_app", "router"]
