"""
Failure Simulation API

Endpoints:
- POST /failures: Inject a HOST, NETWORK or DISK failure
- POST /failures/recover: Restore the entity and start a vSAN resync
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from vsanlab.api.deps import command_response, get_plane
from vsanlab.logic import ControlPlane
from vsanlab.models import FailureKind

router = APIRouter(prefix="/failures", tags=["failures"])


class FailureRequest(BaseModel):
    kind: FailureKind
    target_id: str = Field(min_length=1)  # host id, or disk id for DISK


@router.post("")
def inject_failure(body: FailureRequest, plane: ControlPlane = Depends(get_plane)):
    return command_response(plane.inject_failure(body.kind, body.target_id))


@router.post("/recover")
def recover(body: FailureRequest, plane: ControlPlane = Depends(get_plane)):
    return command_response(plane.recover(body.target_id, body.kind))
