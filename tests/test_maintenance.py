from tests.helpers import event_messages, hosts_by_id, vm_counts
from vsanlab.config import EVACUATION_COMPUTE_DELAY, TARGET_VERSION
from vsanlab.models import FailureKind, MaintenanceMode
from vsanlab.results import ResultStatus


def test_ensure_accessibility(standard_cluster, scheduler):
    plane = standard_cluster(hosts=3)
    result = plane.enter_maintenance("h1", MaintenanceMode.ENSURE_ACCESSIBILITY)
    assert result.ok

    # compute evacuation happens before any data handling
    assert not any(vm["host_id"] == "h1" for vm in plane.list_vms())
    assert all(vm["compliance"] == "Compliant" for vm in plane.list_vms())
    assert plane.session_snapshot()["maintenance_host_id"] == "h1"
    assert plane.get_host("h1")["status"] == "Connected"

    scheduler.advance(EVACUATION_COMPUTE_DELAY)

    assert plane.get_host("h1")["status"] == "Maintenance"
    assert plane.session_snapshot()["maintenance_host_id"] is None
    assert plane.health_snapshot()["state"] == "Warning"
    vms = plane.list_vms()
    assert all(vm["compliance"] == "NonCompliant" for vm in vms)
    on_h1 = [c for vm in vms for c in vm["components"] if c["host_id"] == "h1"]
    assert on_h1 and all(c["status"] == "Absent" for c in on_h1)


def test_full_data_evacuation(standard_cluster, scheduler):
    plane = standard_cluster(hosts=5)
    assert plane.enter_maintenance("h1", MaintenanceMode.FULL_DATA_EVACUATION).ok

    progress = []
    while plane.session_snapshot()["maintenance_host_id"] is not None:
        assert scheduler.step()
        progress.append(plane.session_snapshot()["maintenance_progress"])

    assert progress[:-1] == [0, 20, 40, 60, 80]
    assert plane.get_host("h1")["status"] == "Maintenance"
    vms = plane.list_vms()
    assert all(vm["compliance"] == "Compliant" for vm in vms)
    assert not any(c["host_id"] == "h1" for vm in vms for c in vm["components"])
    for vm in vms:
        redundancy = [c["host_id"] for c in vm["components"] if c["type"] != "VMHome"]
        assert len(redundancy) == len(set(redundancy))


def test_full_evacuation_needs_a_spare_host(standard_cluster, scheduler):
    plane = standard_cluster(hosts=3)
    result = plane.enter_maintenance("h1", MaintenanceMode.FULL_DATA_EVACUATION)
    assert result.status == ResultStatus.INVALID
    assert "EnsureAccessibility" in result.message

    assert scheduler.pending() == 0
    assert plane.get_host("h1")["status"] == "Connected"
    assert plane.session_snapshot()["maintenance_host_id"] is None
    assert any(c["host_id"] == "h1" for vm in plane.list_vms() for c in vm["components"])


def test_full_evacuation_moves_vm_home(standard_cluster, scheduler):
    plane = standard_cluster(hosts=4)
    assert plane.enter_maintenance("h1", MaintenanceMode.FULL_DATA_EVACUATION).ok
    scheduler.run_until_idle()

    assert plane.get_host("h1")["status"] == "Maintenance"
    for vm in plane.list_vms():
        assert vm["compliance"] == "Compliant"
        assert all(c["status"] == "Active" for c in vm["components"])
        assert not any(c["host_id"] == "h1" for c in vm["components"])
        homes = [c["host_id"] for c in vm["components"] if c["type"] == "VMHome"]
        assert homes == ["h2"]
        redundancy = [c["host_id"] for c in vm["components"] if c["type"] != "VMHome"]
        assert len(redundancy) == len(set(redundancy))

    evacuation = [j for j in plane.list_jobs() if j["kind"] == "evacuation"]
    assert [(j["phase"], j["progress_percent"]) for j in evacuation] == [("done", 100)]


def test_single_evacuation_at_a_time(standard_cluster):
    plane = standard_cluster(hosts=4)
    assert plane.enter_maintenance("h1", MaintenanceMode.FULL_DATA_EVACUATION).ok
    result = plane.enter_maintenance("h2", MaintenanceMode.ENSURE_ACCESSIBILITY)
    assert result.status == ResultStatus.REJECTED
    assert plane.inject_failure(FailureKind.HOST, "h3").status == ResultStatus.REJECTED
    assert plane.recover("h3", FailureKind.HOST).status == ResultStatus.REJECTED


def test_maintenance_counts_against_ftt(standard_cluster, scheduler):
    plane = standard_cluster(hosts=3)
    plane.enter_maintenance("h1", MaintenanceMode.ENSURE_ACCESSIBILITY)
    scheduler.run_until_idle()
    assert plane.inject_failure(FailureKind.HOST, "h2").status == ResultStatus.REJECTED


def test_exit_maintenance_resyncs(standard_cluster, scheduler):
    plane = standard_cluster(hosts=3)
    plane.enter_maintenance("h1", MaintenanceMode.ENSURE_ACCESSIBILITY)
    scheduler.run_until_idle()

    assert plane.exit_maintenance("h1").ok
    assert plane.get_host("h1")["status"] == "Connected"
    assert plane.health_snapshot()["state"] == "Resyncing"

    scheduler.run_until_idle()
    assert plane.health_snapshot()["state"] == "Healthy"
    assert all(vm["compliance"] == "Compliant" for vm in plane.list_vms())
    counts = vm_counts(plane, ["h1", "h2", "h3"])
    assert max(counts.values()) - min(counts.values()) <= 1


def test_exit_requires_maintenance(standard_cluster):
    plane = standard_cluster(hosts=3)
    assert plane.exit_maintenance("h2").status == ResultStatus.INVALID


def test_witness_maintenance_is_immediate(robo_cluster, scheduler):
    plane = robo_cluster
    assert plane.enter_maintenance("witness", MaintenanceMode.ENSURE_ACCESSIBILITY).ok
    assert scheduler.pending() == 0
    assert hosts_by_id(plane)["witness"]["status"] == "Maintenance"
    assert plane.health_snapshot()["state"] == "Warning"


def test_robo_data_node_maintenance(robo_cluster, scheduler):
    plane = robo_cluster
    assert plane.enter_maintenance("h2", MaintenanceMode.ENSURE_ACCESSIBILITY).ok
    assert all(vm["host_id"] == "h1" for vm in plane.list_vms())
    scheduler.run_until_idle()
    # no other data node left to take the VMs
    assert plane.enter_maintenance("h1", MaintenanceMode.ENSURE_ACCESSIBILITY).status == ResultStatus.INVALID


def test_upgrade_requires_maintenance(standard_cluster):
    plane = standard_cluster(hosts=3)
    result = plane.upgrade_host("h1")
    assert result.status == ResultStatus.INVALID
    assert "maintenance mode" in result.message


def test_rolling_upgrade(standard_cluster, scheduler):
    plane = standard_cluster(hosts=4)
    plane.enter_maintenance("h1", MaintenanceMode.ENSURE_ACCESSIBILITY)
    scheduler.run_until_idle()
    plane.enter_maintenance("h2", MaintenanceMode.ENSURE_ACCESSIBILITY)
    scheduler.run_until_idle()

    assert plane.upgrade_host("h1").ok
    assert plane.session_snapshot()["upgrading_host_id"] == "h1"
    assert plane.upgrade_host("h2").status == ResultStatus.REJECTED
    assert plane.exit_maintenance("h1").status == ResultStatus.REJECTED

    scheduler.run_until_idle()
    hosts = hosts_by_id(plane)
    assert hosts["h1"]["version"] == TARGET_VERSION
    assert hosts["h2"]["version"] != TARGET_VERSION
    assert plane.session_snapshot()["upgrading_host_id"] is None

    messages = event_messages(plane)
    assert any("installing image" in m for m in messages)
    assert any("verifying driver compliance" in m for m in messages)
    assert any(f"updated successfully to {TARGET_VERSION}" in m for m in messages)

    assert plane.upgrade_host("h1").status == ResultStatus.INVALID
    assert plane.upgrade_host("h2").ok
