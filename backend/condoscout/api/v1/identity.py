"""
Identity endpoints: sign-in, sign-out and the stored identity record.

Endpoints:
    POST /api/v1/identity/sign-in   (Bearer token)
    POST /api/v1/identity/sign-out
    GET  /api/v1/identity/me
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from condoscout.agents.workspace import WorkspaceRegistry
from condoscout.api.v1.chat import get_registry
from condoscout.auth import CurrentIdentity, CurrentUser
from condoscout.models.identity import AuthenticatedIdentity
from condoscout.services.storage import IdentityRecordStore

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/identity", tags=["identity"])

Registry = Annotated[WorkspaceRegistry, Depends(get_registry)]


def get_identity_records(request: Request) -> IdentityRecordStore:
    records = getattr(request.app.state, "identity_records", None)
    if records is None:
        raise HTTPException(status_code=503, detail="Identity storage unavailable")
    return records


IdentityRecords = Annotated[IdentityRecordStore, Depends(get_identity_records)]


@router.post("/sign-in")
async def sign_in(user: CurrentUser, records: IdentityRecords, registry: Registry) -> dict:
    """Store the verified profile and load the user's sessions."""
    await records.save(user)
    workspace = await registry.open(user)
    logger.info("identity_signed_in", identity_id=user.id)
    return {
        "identity": user.model_dump(mode="json", by_alias=True),
        "activeSessionId": workspace.store.active_id,
    }


@router.post("/sign-out")
async def sign_out(identity: CurrentIdentity, records: IdentityRecords, registry: Registry) -> dict:
    """Forget the identity record and close the workspace. Stored sessions remain."""
    if isinstance(identity, AuthenticatedIdentity):
        await records.clear(identity.id)
    registry.close(identity)
    logger.info("identity_signed_out", guest=not isinstance(identity, AuthenticatedIdentity))
    return {"status": "signed_out"}


@router.get("/me")
async def me(identity: CurrentIdentity, records: IdentityRecords) -> dict:
    """The stored identity record, or a guest marker."""
    if not isinstance(identity, AuthenticatedIdentity):
        return {"guest": True, "identity": None}
    record = await records.get(identity.id) or identity
    return {"guest": False, "identity": record.model_dump(mode="json", by_alias=True)}
