from fastapi import APIRouter, Body, Depends, File, Form, Request, Response, UploadFile
from typing import Optional
import logging

from opsconsole.api.deps import current_session, read_upload
from opsconsole.core import auth
from opsconsole.core.config import settings
from opsconsole.core.middleware import session_token
from opsconsole.db.backend import Backend
from opsconsole.db.session import get_backend
from opsconsole.schemas.auth import LoginRequest, LoginResponse, PasswordChange, ProfileUpdate, RegistrationRequest, SessionBlob
from opsconsole.schemas.common import MutationResponse, success

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


@router.post("/login", response_model=LoginResponse)
async def login(response: Response, payload: LoginRequest = Body(...), backend: Backend = Depends(get_backend)):
    token, blob = await auth.login(backend, payload.email, payload.password)
    response.set_cookie(
        settings.SESSION_COOKIE,
        token,
        max_age=settings.SESSION_TTL_MS // 1000,
        httponly=True,
        samesite="lax",
    )
    return LoginResponse(token=token, session=blob)


@router.post("/logout", response_model=MutationResponse)
async def logout(request: Request, response: Response):
    auth.logout(session_token(request))
    response.delete_cookie(settings.SESSION_COOKIE)
    return success("Signed out")


@router.get("/session", response_model=SessionBlob)
async def get_session(session: SessionBlob = Depends(current_session)):
    return session


@router.post("/register", response_model=MutationResponse)
async def register(payload: RegistrationRequest = Body(...), backend: Backend = Depends(get_backend)):
    registration_id = await auth.register(backend, payload)
    return success(
        "Registration Submitted",
        "Your registration request has been submitted and is pending approval.",
        data={"registration_id": registration_id},
    )


@router.post("/profile", response_model=MutationResponse)
async def update_profile(
    first_name: Optional[str] = Form(None),
    last_name: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    session: SessionBlob = Depends(current_session),
    backend: Backend = Depends(get_backend),
):
    form = ProfileUpdate(first_name=first_name, last_name=last_name, phone=phone)
    result = await auth.update_profile(backend, session, form, avatar=await read_upload(avatar))
    return success("Profile Updated", "Your profile has been updated successfully.", data=result)


@router.post("/password", response_model=MutationResponse)
async def change_password(
    payload: PasswordChange = Body(...),
    session: SessionBlob = Depends(current_session),
    backend: Backend = Depends(get_backend),
):
    await auth.change_password(backend, session, payload)
    return success("Password Updated", "Your password has been changed successfully.")
