"""Shared fixtures: control planes on a virtual clock and deployed clusters."""

import pytest

from tests.helpers import bring_up
from vsanlab.logic import ControlPlane
from vsanlab.models import LabScenario, StoragePolicyName, VsanArchitecture
from vsanlab.scheduler import ManualScheduler


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def plane(scheduler):
    cp = ControlPlane(scheduler=scheduler)
    yield cp
    cp.close()


@pytest.fixture
def standard_cluster(plane, scheduler):
    """
    Factory: STANDARD cluster of ``hosts`` nodes with the test VMs deployed
    and the post-deploy rebalance settled.
    """
    def build(hosts=3, policy=StoragePolicyName.RAID1_FTT1, architecture=VsanArchitecture.OSA, deploy_vms=True):
        host_ids = [f"h{i}" for i in range(1, hosts + 1)]
        bring_up(plane, scheduler, LabScenario.STANDARD, host_ids, architecture)
        if deploy_vms:
            result = plane.deploy_test_vms(policy)
            assert result.ok, result.message
            scheduler.run_until_idle()
        return plane

    return build


@pytest.fixture
def robo_cluster(plane, scheduler):
    bring_up(plane, scheduler, LabScenario.ROBO, ["h1", "h2", "witness"])
    result = plane.deploy_test_vms(StoragePolicyName.RAID1_FTT1)
    assert result.ok, result.message
    scheduler.run_until_idle()
    return plane
