"""
Jobber KPI Hub — Dashboard Password Middleware
================================================
Validates the X-Dashboard-Password header against DASHBOARD_PASSWORD.

When no password is configured every request passes through (development).
Public endpoints (health, docs) always bypass the gate.
"""
from __future__ import annotations

import hmac
import os
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse, Response

from scripts.lib.logger import setup_logger

logger = setup_logger("api_middleware")

PASSWORD_HEADER = "X-Dashboard-Password"

# Paths that don't require the password
PUBLIC_PATHS = {
    "/api/health",
    "/docs",
    "/openapi.json",
    "/redoc",
}


class DashboardPasswordMiddleware(BaseHTTPMiddleware):
    """Static shared-password gate for the dashboard API."""

    def __init__(self, app, password: Optional[str] = None):
        super().__init__(app)
        self.password = password if password is not None else os.getenv("DASHBOARD_PASSWORD", "")

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path

        if not self.password or path in PUBLIC_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        supplied = request.headers.get(PASSWORD_HEADER)
        if not supplied:
            return JSONResponse(
                status_code=401,
                content={"detail": f"Missing {PASSWORD_HEADER} header"},
            )

        if not hmac.compare_digest(supplied.encode(), self.password.encode()):
            logger.warning("Rejected dashboard request to %s: bad password", path)
            return JSONResponse(status_code=401, content={"detail": "Invalid dashboard password"})

        return await call_next(request)
