from fastapi import APIRouter, Depends
from pydantic import BaseModel

from vsanlab.api.deps import command_response, get_plane
from vsanlab.logic import ControlPlane
from vsanlab.models import DiskRole

router = APIRouter(prefix="/hosts", tags=["hosts"])


class DiskClaim(BaseModel):
    role: DiskRole


@router.get("")
def list_hosts(plane: ControlPlane = Depends(get_plane)):
    return plane.list_hosts()


@router.get("/{host_id}")
def get_host(host_id: str, plane: ControlPlane = Depends(get_plane)):
    return plane.get_host(host_id)


@router.post("/{host_id}/vsan-traffic")
def toggle_vsan_traffic(host_id: str, plane: ControlPlane = Depends(get_plane)):
    return command_response(plane.toggle_vsan_traffic(host_id))


@router.post("/{host_id}/disks/{disk_id}/claim")
def claim_disk(host_id: str, disk_id: str, body: DiskClaim, plane: ControlPlane = Depends(get_plane)):
    """Toggle claim: posting the disk's current role releases it."""
    return command_response(plane.claim_disk(host_id, disk_id, body.role))


@router.post("/{host_id}/join")
def add_expansion_host(host_id: str, plane: ControlPlane = Depends(get_plane)):
    return command_response(plane.add_expansion_host(host_id))


@router.post("/{host_id}/leave")
def leave_cluster(host_id: str, plane: ControlPlane = Depends(get_plane)):
    return command_response(plane.leave_cluster(host_id))
