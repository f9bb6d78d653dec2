from fastapi import APIRouter, Depends

from opsconsole.core.cache import query_cache
from opsconsole.core.config import settings
from opsconsole.db.backend import Backend, RestBackend
from opsconsole.db.session import get_backend

router = APIRouter()


@router.get("/health")
async def health(backend: Backend = Depends(get_backend)):
    return {
        "status": "ok",
        "service": settings.PROJECT_NAME,
        "backend": "rest" if isinstance(backend, RestBackend) else "memory",
        "cache": query_cache.stats,
    }
