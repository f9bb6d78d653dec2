from typing import Optional

from fastapi import Depends, Request, UploadFile

from opsconsole.core.auth import has_permission
from opsconsole.core.errors import AuthenticationError, PermissionDenied
from opsconsole.core.uploads import UploadedFile
from opsconsole.schemas.auth import SessionBlob


def current_session(request: Request) -> SessionBlob:
    session = getattr(request.state, "session", None)
    if session is None:
        raise AuthenticationError("Session expired or missing")
    return session


def require(permission: str):
    """Dependency factory: the session must hold `permission` (admins hold all)."""
    def checker(session: SessionBlob = Depends(current_session)) -> SessionBlob:
        if not has_permission(session, permission):
            raise PermissionDenied(permission)
        return session
    return checker


async def read_upload(upload: Optional[UploadFile]) -> Optional[UploadedFile]:
    if upload is None or not upload.filename:
        return None
    content = await upload.read()
    return upload.filename, content, upload.content_type or "application/octet-stream"
