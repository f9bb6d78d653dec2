from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response, JSONResponse
import hashlib
from opsconsole.core.audit import audit_repo
from opsconsole.core.config import settings
from opsconsole.core.session import resolve_session
from opsconsole.schemas.audit import AuditLogEntry, AuditStatus
from opsconsole.schemas.common import failure_toast
import logging
from typing import Callable

logger = logging.getLogger(__name__)

MODULE_PREFIXES = {
    "/auth": "AUTH",
    "/bams": "BAMS",
    "/terminal-sales": "SALES",
    "/kyc": "KYC",
    "/hrms": "HRMS",
    "/clients": "CLIENTS",
    "/health": "HEALTH_CHECK",
}

PUBLIC_PATHS = {"/", "/health", "/auth/login", "/auth/register", "/docs", "/redoc", "/openapi.json"}


def session_token(request: Request):
    # Cookie first (browser), then header (API clients)
    return request.cookies.get(settings.SESSION_COOKIE) or request.headers.get(settings.SESSION_HEADER)


def action_type_for(endpoint: str) -> str:
    for prefix, action in MODULE_PREFIXES.items():
        if endpoint.startswith(prefix):
            return action
    return "UNKNOWN"


class AuditMiddleware(BaseHTTPMiddleware):
    """Gates non-public routes on a live session and records every request in the audit repository."""

    async def dispatch(self, request: Request, call_next: Callable):
        endpoint = request.url.path
        method = request.method
        action_type = action_type_for(endpoint)

        session = resolve_session(session_token(request))
        request.state.session = session
        actor = session.user.id if session else "anonymous"
        is_public = endpoint in PUBLIC_PATHS

        if session is None and not is_public:
            response = JSONResponse(
                status_code=401,
                content={
                    "detail": "Session expired or missing",
                    "toast": failure_toast("Please sign in again.", title="Session expired").model_dump(mode="json"),
                },
            )
            try:
                audit_repo.save(AuditLogEntry(
                    endpoint=endpoint,
                    method=method,
                    action_type=action_type,
                    actor=actor,
                    status=AuditStatus.FAILURE,
                ))
            except Exception as e:
                logger.error(f"Audit Logging Failed: {e}")
            return response

        request_body_bytes = await request.body()
        input_hash = hashlib.sha256(request_body_bytes).hexdigest()

        # Re-inject body
        async def receive():
            return {"type": "http.request", "body": request_body_bytes}
        request._receive = receive

        status = AuditStatus.FAILURE
        output_hash = None

        try:
            response = await call_next(request)
            if 200 <= response.status_code < 300:
                status = AuditStatus.SUCCESS

            response_body_bytes = b""
            async for chunk in response.body_iterator:
                response_body_bytes += chunk
            output_hash = hashlib.sha256(response_body_bytes).hexdigest()

            rebuilt = Response(
                content=response_body_bytes,
                status_code=response.status_code,
                media_type=response.media_type
            )
            # Raw header list keeps repeated headers such as Set-Cookie
            rebuilt.raw_headers = [(k, v) for k, v in response.raw_headers if k.lower() != b"content-length"]
            rebuilt.raw_headers.append((b"content-length", str(len(response_body_bytes)).encode("latin-1")))
            response = rebuilt
        finally:
            try:
                audit_repo.save(AuditLogEntry(
                    endpoint=endpoint,
                    method=method,
                    action_type=action_type,
                    actor=actor,
                    input_hash=input_hash,
                    output_hash=output_hash,
                    status=status
                ))
            except Exception as log_error:
                logger.error(f"Audit Logging Failed: {log_error}")

        return response
