from fastapi import APIRouter, Depends
from pydantic import BaseModel

from vsanlab.api.deps import command_response, get_plane
from vsanlab.logic import ControlPlane
from vsanlab.models import StoragePolicyName

router = APIRouter(prefix="/vms", tags=["vms"])


class VMDeployRequest(BaseModel):
    policy: StoragePolicyName = StoragePolicyName.RAID1_FTT1


@router.get("")
def list_vms(plane: ControlPlane = Depends(get_plane)):
    return plane.list_vms()


@router.post("/deploy")
def deploy_test_vms(body: VMDeployRequest, plane: ControlPlane = Depends(get_plane)):
    return command_response(plane.deploy_test_vms(body.policy))
