from fastapi import HTTPException

from vsanlab.logic import ControlPlane
from vsanlab.results import CommandResult, ResultStatus

# Will be injected by service.py
_control_plane = None


def set_control_plane(plane: ControlPlane):
    """Set control plane reference (called by service.py)"""
    global _control_plane
    _control_plane = plane


def get_plane() -> ControlPlane:
    if _control_plane is None:
        raise HTTPException(status_code=503, detail="Control plane not initialized")
    return _control_plane


def command_response(result: CommandResult) -> dict:
    """invalid -> 400, rejected -> 409, ok -> result body."""
    if result.status == ResultStatus.INVALID:
        raise HTTPException(status_code=400, detail=result.message)
    if result.status == ResultStatus.REJECTED:
        raise HTTPException(status_code=409, detail=result.message)
    return result.model_dump(mode="json")
