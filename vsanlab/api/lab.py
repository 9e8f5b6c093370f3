"""
Lab Setup API

Guided setup wizard and lab session endpoints.

Endpoints:
- GET  /lab: Session state (scenario, architecture, phase, locks)
- POST /lab/scenario, /lab/architecture, /lab/cluster, /lab/hosts
- POST /lab/validate/network, /lab/validate/disks, /lab/deploy
- POST /lab/reset
- GET  /lab/jobs: Workflow jobs, newest first
"""

from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from vsanlab.api.deps import command_response, get_plane
from vsanlab.logic import ControlPlane
from vsanlab.models import LabScenario, VsanArchitecture

router = APIRouter(prefix="/lab", tags=["lab"])


class ScenarioSelect(BaseModel):
    scenario: LabScenario


class ArchitectureSelect(BaseModel):
    architecture: VsanArchitecture


class HostSelection(BaseModel):
    host_ids: List[str] = Field(min_length=1)


@router.get("")
def get_session(plane: ControlPlane = Depends(get_plane)):
    return plane.session_snapshot()


@router.post("/scenario")
def select_scenario(body: ScenarioSelect, plane: ControlPlane = Depends(get_plane)):
    return command_response(plane.select_scenario(body.scenario))


@router.post("/architecture")
def set_architecture(body: ArchitectureSelect, plane: ControlPlane = Depends(get_plane)):
    return command_response(plane.set_architecture(body.architecture))


@router.post("/cluster")
def create_cluster(plane: ControlPlane = Depends(get_plane)):
    return command_response(plane.create_cluster())


@router.post("/hosts")
def add_hosts(body: HostSelection, plane: ControlPlane = Depends(get_plane)):
    return command_response(plane.add_hosts(body.host_ids))


@router.post("/validate/network")
def validate_network(plane: ControlPlane = Depends(get_plane)):
    return command_response(plane.validate_network())


@router.post("/validate/disks")
def validate_disks(plane: ControlPlane = Depends(get_plane)):
    return command_response(plane.validate_disks())


@router.post("/deploy")
def deploy_vsan(plane: ControlPlane = Depends(get_plane)):
    return command_response(plane.deploy_vsan())


@router.post("/reset")
def reset_lab(plane: ControlPlane = Depends(get_plane)):
    return command_response(plane.reset_lab())


@router.get("/jobs")
def list_jobs(plane: ControlPlane = Depends(get_plane)):
    return plane.list_jobs()
