"""Thin API launcher.

This is the uvicorn entrypoint. All application logic lives in the chatrelay package.
Run with: uvicorn main:app --reload

The app instance is created here (not in chatrelay.app) to avoid import-time
side effects, so tests can import create_app without a configured environment.
"""

from chatrelay.app import add_request_id_middleware, create_app

app = create_app()
# Added LAST so it runs FIRST (outermost)
add_request_id_middleware(app)

__all__ = ["app"]
