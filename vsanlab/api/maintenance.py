from fastapi import APIRouter, Depends
from pydantic import BaseModel

from vsanlab.api.deps import command_response, get_plane
from vsanlab.logic import ControlPlane
from vsanlab.models import MaintenanceMode

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


class MaintenanceEnter(BaseModel):
    mode: MaintenanceMode = MaintenanceMode.ENSURE_ACCESSIBILITY


@router.post("/{host_id}/enter")
def enter_maintenance(host_id: str, body: MaintenanceEnter, plane: ControlPlane = Depends(get_plane)):
    return command_response(plane.enter_maintenance(host_id, body.mode))


@router.post("/{host_id}/exit")
def exit_maintenance(host_id: str, plane: ControlPlane = Depends(get_plane)):
    return command_response(plane.exit_maintenance(host_id))


@router.post("/{host_id}/upgrade")
def upgrade_host(host_id: str, plane: ControlPlane = Depends(get_plane)):
    """Remediate a host in maintenance mode to the target ESXi image."""
    return command_response(plane.upgrade_host(host_id))
