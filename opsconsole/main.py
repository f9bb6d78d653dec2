from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import logging

from opsconsole.core.config import settings
from opsconsole.core.errors import AuthenticationError, BackendError, FormValidationError, PermissionDenied, RecordNotFound
from opsconsole.core.middleware import AuditMiddleware
from opsconsole.db.session import backend
from opsconsole.schemas.common import failure_toast

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.PROJECT_NAME)
app.add_middleware(AuditMiddleware)


def toast_response(status_code: int, message: str, title: str = "Error") -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": message, "toast": failure_toast(message, title=title).model_dump(mode="json")},
    )


@app.exception_handler(FormValidationError)
async def form_validation_handler(request: Request, exc: FormValidationError):
    return toast_response(400, exc.message, exc.title)


@app.exception_handler(BackendError)
async def backend_error_handler(request: Request, exc: BackendError):
    logger.error(f"Backend error on {request.method} {request.url.path}: {exc.message} (code={exc.code})")
    if exc.is_unique_violation:
        return toast_response(409, exc.message, "Already exists")
    return toast_response(502, exc.message)


@app.exception_handler(AuthenticationError)
async def authentication_handler(request: Request, exc: AuthenticationError):
    return toast_response(401, exc.message, "Authentication failed")


@app.exception_handler(PermissionDenied)
async def permission_handler(request: Request, exc: PermissionDenied):
    logger.warning(f"Permission denied on {request.url.path}: {exc.permission}")
    return toast_response(403, exc.message, "Access denied")


@app.exception_handler(RecordNotFound)
async def not_found_handler(request: Request, exc: RecordNotFound):
    return toast_response(404, exc.message, "Not found")


# Include routers
from opsconsole.api import auth, bams, clients, health, hrms, kyc, sales
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(sales.router)
app.include_router(clients.router)
app.include_router(bams.router)
app.include_router(kyc.router)
app.include_router(hrms.router)


@app.on_event("shutdown")
async def shutdown_event():
    await backend.close()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
