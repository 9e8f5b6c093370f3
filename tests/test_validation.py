from vsanlab.models import DiskRole, HostStatus, LabScenario, VsanArchitecture
from vsanlab.services.topology import generate_inventory
from vsanlab.services.validation_rules import (
    host_disks_ready,
    validate_claim,
    validate_disks,
    validate_host_selection,
    validate_network,
)


def _hosts(scenario=LabScenario.STANDARD, architecture=VsanArchitecture.OSA):
    hosts = generate_inventory(scenario, architecture)
    for host in hosts:
        host.status = HostStatus.CONNECTED
    return hosts


def test_osa_cache_requires_flash():
    host = _hosts()[0]
    hdd = host.disks[1]
    ok, msg = validate_claim(host, hdd, DiskRole.CACHE, VsanArchitecture.OSA)
    assert not ok
    assert "flash" in msg


def test_osa_ssd_cannot_be_capacity():
    host = _hosts()[0]
    ok, msg = validate_claim(host, host.disks[0], DiskRole.CAPACITY, VsanArchitecture.OSA)
    assert not ok
    assert msg == "Error: The SSD must be assigned as Cache in OSA."


def test_osa_single_cache_disk_per_host():
    hosts = generate_inventory(LabScenario.STANDARD, VsanArchitecture.ESA)
    host = hosts[0]
    host.status = HostStatus.CONNECTED
    host.disks[0].claimed_as = DiskRole.CACHE
    ok, msg = validate_claim(host, host.disks[1], DiskRole.CACHE, VsanArchitecture.OSA)
    assert not ok
    assert "already has a Cache disk" in msg


def test_esa_rejects_hdd():
    host = _hosts()[0]
    ok, msg = validate_claim(host, host.disks[1], DiskRole.STORAGE_POOL, VsanArchitecture.ESA)
    assert not ok
    assert "All-Flash" in msg


def test_esa_rejects_tiered_roles():
    host = _hosts(architecture=VsanArchitecture.ESA)[0]
    ok, _ = validate_claim(host, host.disks[0], DiskRole.CACHE, VsanArchitecture.ESA)
    assert not ok


def test_release_is_always_allowed():
    host = _hosts()[0]
    host.disks[0].claimed_as = DiskRole.CACHE
    ok, _ = validate_claim(host, host.disks[0], DiskRole.CACHE, VsanArchitecture.OSA)
    assert ok


def test_witness_role_reserved_for_witness_appliance():
    hosts = _hosts(LabScenario.ROBO)
    data_host, witness = hosts[0], hosts[2]
    assert not validate_claim(data_host, data_host.disks[0], DiskRole.WITNESS, VsanArchitecture.OSA)[0]
    assert validate_claim(witness, witness.disks[0], DiskRole.WITNESS, VsanArchitecture.OSA)[0]
    assert not validate_claim(witness, witness.disks[0], DiskRole.CACHE, VsanArchitecture.OSA)[0]


def test_unmanaged_host_cannot_claim():
    host = generate_inventory(LabScenario.STANDARD, VsanArchitecture.OSA)[0]
    ok, msg = validate_claim(host, host.disks[0], DiskRole.CACHE, VsanArchitecture.OSA)
    assert not ok
    assert "not part of the cluster" in msg


def test_disk_group_readiness():
    host = _hosts()[0]
    assert not host_disks_ready(host, VsanArchitecture.OSA)
    host.disks[0].claimed_as = DiskRole.CACHE
    assert not host_disks_ready(host, VsanArchitecture.OSA)
    host.disks[1].claimed_as = DiskRole.CAPACITY
    assert host_disks_ready(host, VsanArchitecture.OSA)

    esa = _hosts(architecture=VsanArchitecture.ESA)[0]
    esa.disks[0].claimed_as = DiskRole.STORAGE_POOL
    assert not host_disks_ready(esa, VsanArchitecture.ESA)
    esa.disks[1].claimed_as = DiskRole.STORAGE_POOL
    assert host_disks_ready(esa, VsanArchitecture.ESA)


def test_network_requires_vsan_traffic_on_every_connected_host():
    hosts = _hosts()[:3]
    hosts[0].vsan_traffic_enabled = True
    hosts[1].vsan_traffic_enabled = True
    ok, msg = validate_network(hosts)
    assert not ok
    assert "esxi03" in msg
    hosts[2].vsan_traffic_enabled = True
    assert validate_network(hosts)[0]


def test_robo_disks_require_witness_metadata_claim():
    hosts = _hosts(LabScenario.ROBO)
    for host in hosts:
        host.vsan_traffic_enabled = True
    for host in hosts[:2]:
        host.disks[0].claimed_as = DiskRole.CACHE
        host.disks[1].claimed_as = DiskRole.CAPACITY
    ok, msg = validate_disks(hosts, VsanArchitecture.OSA, LabScenario.ROBO)
    assert not ok
    assert "witness" in msg
    hosts[2].disks[0].claimed_as = DiskRole.WITNESS
    assert validate_disks(hosts, VsanArchitecture.OSA, LabScenario.ROBO)[0]


def test_host_selection_minimums():
    standard = generate_inventory(LabScenario.STANDARD, VsanArchitecture.OSA)
    assert not validate_host_selection(LabScenario.STANDARD, standard[:2])[0]
    assert validate_host_selection(LabScenario.STANDARD, standard[:3])[0]

    robo = generate_inventory(LabScenario.ROBO, VsanArchitecture.OSA)
    assert not validate_host_selection(LabScenario.ROBO, robo[:2])[0]
    assert validate_host_selection(LabScenario.ROBO, robo)[0]
