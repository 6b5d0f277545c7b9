"""
Request-scoped access to the application context.

The context is built once by create_app() and stored on app.state.
"""

from fastapi import Request

from services.context import PaymentContext


def get_context(request: Request) -> PaymentContext:
    return request.app.state.context
