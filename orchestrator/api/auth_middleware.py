"""ASGI middleware for Bearer token authentication of operator endpoints."""

from __future__ import annotations

import hmac

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from orchestrator.audit.logger import AuditLogger
from orchestrator.models import AuditEvent, AuditEventType, RiskLevel

# Path prefixes that require the admin token; everything else is public
# (the chat widget and platform webhooks authenticate differently)
PROTECTED_PREFIXES = ("/admin",)


class AdminAuthMiddleware:
    """Validates Bearer tokens on admin paths using constant-time comparison."""

    def __init__(
        self,
        app: ASGIApp,
        token: str,
        audit_logger: AuditLogger | None = None,
        protected_prefixes: tuple[str, ...] = PROTECTED_PREFIXES,
    ) -> None:
        self.app = app
        self._token = token.encode()
        self.audit_logger = audit_logger
        self._protected_prefixes = protected_prefixes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        path = request.url.path

        if not path.startswith(self._protected_prefixes):
            await self.app(scope, receive, send)
            return

        auth_header = request.headers.get("authorization", "")

        if not auth_header.startswith("Bearer "):
            response = JSONResponse({"error": "Authentication required"}, status_code=401)
            self._log_failure(request, "missing_token" if not auth_header else "invalid_format")
            await response(scope, receive, send)
            return

        provided_token = auth_header[7:].encode()

        if not hmac.compare_digest(provided_token, self._token):
            response = JSONResponse({"error": "Access denied"}, status_code=403)
            self._log_failure(request, "invalid_token")
            await response(scope, receive, send)
            return

        if self.audit_logger:
            self.audit_logger.log(AuditEvent(
                event_type=AuditEventType.AUTH_SUCCESS,
                source_ip=request.client.host if request.client else None,
                action=f"{request.method} {path}",
                result="success",
                risk_level=RiskLevel.INFO,
            ))

        await self.app(scope, receive, send)

    def _log_failure(self, request: Request, reason: str) -> None:
        if self.audit_logger:
            self.audit_logger.log(AuditEvent(
                event_type=AuditEventType.AUTH_FAILURE,
                source_ip=request.client.host if request.client else None,
                action=f"{request.method} {request.url.path}",
                result="failure",
                risk_level=RiskLevel.HIGH,
                details={"reason": reason},
            ))
