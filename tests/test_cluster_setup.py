import pytest

from tests.helpers import event_messages, hosts_by_id, vms_by_id
from vsanlab.config import VSAN_DEPLOY_DELAY
from vsanlab.models import DiskRole, LabScenario, StoragePolicyName, VsanArchitecture
from vsanlab.results import ResultStatus, UnknownEntityError


def test_initial_state(plane):
    session = plane.session_snapshot()
    assert session["phase"] == "INTRO"
    assert session["scenario"] == "STANDARD"
    assert session["architecture"] == "OSA"
    hosts = plane.list_hosts()
    assert [h["id"] for h in hosts] == [f"h{i}" for i in range(1, 8)]
    assert all(h["status"] == "Unmanaged" for h in hosts)
    assert plane.health_snapshot()["state"] == "Healthy"


def test_robo_inventory(plane):
    assert plane.select_scenario(LabScenario.ROBO).ok
    hosts = hosts_by_id(plane)
    assert set(hosts) == {"h1", "h2", "witness"}
    assert hosts["witness"]["is_witness"]
    assert hosts["witness"]["disks"][0]["tier"] == "WitnessMetadata"


def test_architecture_switch_regenerates_inventory(plane):
    plane.select_scenario(LabScenario.STANDARD)
    assert plane.set_architecture(VsanArchitecture.ESA).ok
    disks = plane.get_host("h1")["disks"]
    assert [d["type"] for d in disks] == ["NVMe", "NVMe", "NVMe"]
    assert all(d["claimed_as"] == "Unclaimed" for d in disks)


def test_wizard_rejects_out_of_order_steps(plane):
    result = plane.create_cluster()
    assert result.status == ResultStatus.INVALID
    plane.select_scenario(LabScenario.STANDARD)
    assert plane.deploy_vsan().status == ResultStatus.INVALID


def test_standard_needs_three_hosts(plane):
    plane.select_scenario(LabScenario.STANDARD)
    plane.create_cluster()
    result = plane.add_hosts(["h1", "h2"])
    assert result.status == ResultStatus.INVALID
    assert "minimum of 3 hosts" in result.message
    assert plane.session_snapshot()["phase"] == "ADD_HOSTS"


def test_robo_needs_witness(plane):
    plane.select_scenario(LabScenario.ROBO)
    plane.create_cluster()
    result = plane.add_hosts(["h1", "h2"])
    assert result.status == ResultStatus.INVALID
    assert "Witness" in result.message


def test_claim_toggle(plane):
    plane.select_scenario(LabScenario.STANDARD)
    plane.create_cluster()
    plane.add_hosts(["h1", "h2", "h3"])

    assert plane.claim_disk("h1", "naa.5001", DiskRole.CACHE).ok
    assert plane.get_host("h1")["disks"][0]["claimed_as"] == "Cache"
    assert plane.claim_disk("h1", "naa.5001", DiskRole.CACHE).ok
    assert plane.get_host("h1")["disks"][0]["claimed_as"] == "Unclaimed"


def test_claim_disk_of_another_host_is_invalid(plane):
    plane.select_scenario(LabScenario.STANDARD)
    plane.create_cluster()
    plane.add_hosts(["h1", "h2", "h3"])
    result = plane.claim_disk("h1", "naa.5002", DiskRole.CACHE)
    assert result.status == ResultStatus.INVALID


def test_deploy_blocked_without_vsan_traffic(plane):
    plane.select_scenario(LabScenario.STANDARD)
    plane.create_cluster()
    plane.add_hosts(["h1", "h2", "h3"])
    result = plane.deploy_vsan()
    assert result.status == ResultStatus.INVALID
    assert "VMkernel" in result.message
    assert plane.session_snapshot()["phase"] == "CONFIG_VSAN"


def test_deploy_blocked_by_incomplete_disk_group(plane):
    plane.select_scenario(LabScenario.STANDARD)
    plane.create_cluster()
    plane.add_hosts(["h1", "h2", "h3"])
    for host_id in ("h1", "h2", "h3"):
        plane.toggle_vsan_traffic(host_id)
    result = plane.deploy_vsan()
    assert result.status == ResultStatus.INVALID
    assert result.message.startswith("Error OSA")


def test_vsan_deploy_completes_after_delay(plane, scheduler):
    plane.select_scenario(LabScenario.STANDARD)
    plane.create_cluster()
    plane.add_hosts(["h1", "h2", "h3"])
    for i in (1, 2, 3):
        plane.toggle_vsan_traffic(f"h{i}")
        plane.claim_disk(f"h{i}", f"naa.500{i}", DiskRole.CACHE)
        plane.claim_disk(f"h{i}", f"naa.600{i}1", DiskRole.CAPACITY)

    assert plane.deploy_vsan().ok
    assert plane.session_snapshot()["phase"] == "DEPLOYING"
    scheduler.advance(VSAN_DEPLOY_DELAY / 2)
    assert plane.session_snapshot()["phase"] == "DEPLOYING"
    scheduler.advance(VSAN_DEPLOY_DELAY)
    assert plane.session_snapshot()["phase"] == "OPERATION"
    assert plane.capacity()["raw_capacity_gb"] == 12000
    assert any("Raw capacity: 12.0 TB" in m for m in event_messages(plane))


def test_deploy_test_vms(standard_cluster):
    plane = standard_cluster(hosts=3)
    vms = plane.list_vms()
    assert len(vms) == 12
    assert [vm["name"] for vm in vms][:2] == ["App-Server-01", "App-Server-02"]
    assert all(len(vm["components"]) == 4 for vm in vms)
    assert all(vm["compliance"] == "Compliant" for vm in vms)
    assert plane.capacity()["consumed_gb"] == 5100
    assert plane.session_snapshot()["ftt"] == 1


def test_deploy_vms_rejects_unsatisfiable_policy(standard_cluster):
    plane = standard_cluster(hosts=3, deploy_vms=False)
    result = plane.deploy_test_vms(StoragePolicyName.RAID5_FTT1)
    assert result.status == ResultStatus.INVALID
    assert plane.list_vms() == []
    latest = plane.recent_events(1)[0]
    assert latest["severity"] == "ERROR"
    assert latest["message"] == result.message


def test_deploy_vms_only_once(standard_cluster):
    plane = standard_cluster(hosts=3)
    assert plane.deploy_test_vms(StoragePolicyName.RAID1_FTT1).status == ResultStatus.INVALID


def test_esa_cluster_with_erasure_coding(standard_cluster):
    plane = standard_cluster(hosts=4, policy=StoragePolicyName.RAID5_FTT1, architecture=VsanArchitecture.ESA)
    vm = vms_by_id(plane)["vm7"]
    assert len(vm["components"]) == 5
    assert vm["used_space_gb"] == 665
    assert plane.capacity()["raw_capacity_gb"] == 4 * 3 * 1920


def test_expansion_host_and_leave(standard_cluster):
    plane = standard_cluster(hosts=3)
    assert plane.add_expansion_host("h4").ok
    h4 = plane.get_host("h4")
    assert h4["status"] == "Connected"
    assert not h4["vsan_traffic_enabled"]
    assert all(d["claimed_as"] == "Unclaimed" for d in h4["disks"])

    assert plane.leave_cluster("h4").ok
    assert plane.get_host("h4")["status"] == "Unmanaged"

    result = plane.leave_cluster("h1")
    assert result.status == ResultStatus.INVALID


def test_unknown_ids_raise(plane):
    with pytest.raises(UnknownEntityError):
        plane.toggle_vsan_traffic("h99")
    with pytest.raises(UnknownEntityError):
        plane.get_host("nope")


def test_reset_lab(standard_cluster, scheduler):
    plane = standard_cluster(hosts=3)
    plane.inject_failure("HOST", "h1")
    plane.recover("h1", "HOST")
    assert scheduler.pending() > 0

    assert plane.reset_lab().ok
    assert scheduler.pending() == 0
    assert plane.session_snapshot()["phase"] == "INTRO"
    assert plane.list_vms() == []
    assert plane.recent_events() == []
    assert plane.health_snapshot()["state"] == "Healthy"
    assert all(h["status"] == "Unmanaged" for h in plane.list_hosts())
