"""Cluster bring-up and snapshot helpers shared by the test modules."""

from vsanlab.config import VSAN_DEPLOY_DELAY
from vsanlab.models import DiskRole, VsanArchitecture


def claim_host_disks(plane, host_id, architecture):
    host = plane.get_host(host_id)
    for disk in host["disks"]:
        if disk["tier"] == "WitnessMetadata":
            role = DiskRole.WITNESS
        elif architecture == VsanArchitecture.ESA:
            role = DiskRole.STORAGE_POOL
        elif disk["tier"] == "Cache":
            role = DiskRole.CACHE
        else:
            role = DiskRole.CAPACITY
        result = plane.claim_disk(host_id, disk["id"], role)
        assert result.ok, result.message


def bring_up(plane, scheduler, scenario, host_ids, architecture=VsanArchitecture.OSA):
    """Run the setup wizard to OPERATION."""
    assert plane.select_scenario(scenario).ok
    assert plane.set_architecture(architecture).ok
    assert plane.create_cluster().ok
    assert plane.add_hosts(host_ids).ok
    for host_id in host_ids:
        assert plane.toggle_vsan_traffic(host_id).ok
        claim_host_disks(plane, host_id, architecture)
    result = plane.deploy_vsan()
    assert result.ok, result.message
    scheduler.advance(VSAN_DEPLOY_DELAY)
    assert plane.session_snapshot()["phase"] == "OPERATION"


def vms_by_id(plane):
    return {vm["id"]: vm for vm in plane.list_vms()}


def hosts_by_id(plane):
    return {h["id"]: h for h in plane.list_hosts()}


def vm_counts(plane, host_ids):
    counts = {h: 0 for h in host_ids}
    for vm in plane.list_vms():
        if vm["host_id"] in counts:
            counts[vm["host_id"]] += 1
    return counts


def event_messages(plane):
    """Oldest first."""
    return [e["message"] for e in reversed(plane.recent_events(1000))]
