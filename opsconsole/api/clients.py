from fastapi import APIRouter, Body, Depends, Query

from opsconsole.api.deps import require
from opsconsole.core import clients
from opsconsole.core.errors import RecordNotFound
from opsconsole.db.backend import Backend
from opsconsole.db.session import get_backend
from opsconsole.schemas.auth import SessionBlob
from opsconsole.schemas.common import MutationResponse, success
from opsconsole.schemas.sales import BuyerClientRequest

router = APIRouter(prefix="/clients", tags=["clients"])


@router.get("/lookup")
async def find_client(
    name: str = Query(..., min_length=1),
    session: SessionBlob = Depends(require("clients_view")),
    backend: Backend = Depends(get_backend),
):
    client = await clients.find_client_by_name(backend, name)
    if client is None:
        raise RecordNotFound("Client", name)
    return client


@router.post("/buyers", response_model=MutationResponse)
async def create_buyer(
    name: str = Query(..., min_length=1),
    payload: BuyerClientRequest = Body(...),
    session: SessionBlob = Depends(require("clients_manage")),
    backend: Backend = Depends(get_backend),
):
    ref = await clients.create_buyer_client(backend, name, payload.contact_number, payload.state, user_id=session.user.id)
    return success("Client Created", f"{name} added as buyer client", data=ref)
