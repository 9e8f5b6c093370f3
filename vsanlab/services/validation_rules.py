"""
Validation Rules
Architecture-specific admission checks for disk claims, host readiness and
host selection. Every check returns (ok, message) and never mutates state.

OSA (mirrored): one SSD/NVMe cache disk + at least one HDD capacity disk per host.
ESA (pooled): NVMe-only storage pool, at least two pool disks per host.
"""

from typing import Iterable, List, Sequence, Tuple

from vsanlab.config import ROBO_DATA_HOSTS, STANDARD_MIN_HOSTS
from vsanlab.models import (
    Disk,
    DiskMedia,
    DiskRole,
    Host,
    HostStatus,
    LabScenario,
    VsanArchitecture,
)

CACHE_MEDIA = (DiskMedia.SSD, DiskMedia.NVME)
CAPACITY_MEDIA = (DiskMedia.HDD,)
POOL_MEDIA = (DiskMedia.NVME,)
ESA_MIN_POOL_DISKS = 2


def resolve_claim_role(disk: Disk, role: DiskRole) -> DiskRole:
    """Claim toggle: claiming the role a disk already has releases it."""
    if disk.claimed_as == role:
        return DiskRole.UNCLAIMED
    return role


def validate_claim(
    host: Host, disk: Disk, role: DiskRole, architecture: VsanArchitecture
) -> Tuple[bool, str]:
    """
    Check a claim request against the active architecture.

    Releasing a claim (toggle back to Unclaimed) is always allowed on a
    cluster host.
    """
    if not host.in_cluster:
        return False, f"Error: Host {host.short_name} is not part of the cluster."

    if role == DiskRole.UNCLAIMED:
        return False, "Error: Select a role to claim the disk as."

    if host.is_witness:
        if role != DiskRole.WITNESS:
            return False, "Error: The witness appliance only accepts witness metadata claims."
        return True, "ok"

    if role == DiskRole.WITNESS:
        return False, "Error: The Witness role is reserved for the witness appliance."

    if resolve_claim_role(disk, role) == DiskRole.UNCLAIMED:
        return True, "ok"

    if architecture == VsanArchitecture.OSA:
        if role == DiskRole.STORAGE_POOL:
            return False, "Error: Storage pools are only available in vSAN ESA."
        if role == DiskRole.CACHE:
            if disk.media not in CACHE_MEDIA:
                return False, f"Error: Cache tier requires flash media; {disk.id} is {disk.media.value}."
            if any(d.id != disk.id and d.claimed_as == DiskRole.CACHE for d in host.disks):
                return False, f"Error: Host {host.short_name} already has a Cache disk assigned."
        if role == DiskRole.CAPACITY and disk.media not in CAPACITY_MEDIA:
            return False, "Error: The SSD must be assigned as Cache in OSA."
        return True, "ok"

    # ESA
    if role != DiskRole.STORAGE_POOL:
        return False, f"Error: vSAN ESA has no {role.value} tier; claim disks into the storage pool."
    if disk.media == DiskMedia.HDD:
        return False, "Error: vSAN ESA requires All-Flash (NVMe) disks. HDDs are not supported."
    if disk.media not in POOL_MEDIA:
        return False, f"Error: vSAN ESA storage pools accept NVMe only; {disk.id} is {disk.media.value}."
    return True, "ok"


def host_disks_ready(host: Host, architecture: VsanArchitecture) -> bool:
    roles = [d.claimed_as for d in host.disks]
    if architecture == VsanArchitecture.OSA:
        return roles.count(DiskRole.CACHE) == 1 and roles.count(DiskRole.CAPACITY) >= 1
    return roles.count(DiskRole.STORAGE_POOL) >= ESA_MIN_POOL_DISKS


def _short_names(hosts: Iterable[Host]) -> str:
    return ", ".join(h.short_name for h in hosts)


def validate_network(hosts: Sequence[Host]) -> Tuple[bool, str]:
    """Every Connected host must carry vSAN traffic on a VMkernel adapter."""
    missing = [h for h in hosts if h.status == HostStatus.CONNECTED and not h.vsan_traffic_enabled]
    if missing:
        return False, (
            "Error: vSAN traffic must be enabled on the VMkernel adapter of every host. "
            f"Missing: {_short_names(missing)}"
        )
    return True, "ok"


def validate_disks(
    hosts: Sequence[Host], architecture: VsanArchitecture, scenario: LabScenario
) -> Tuple[bool, str]:
    """Disk-group readiness of every Connected, traffic-enabled host."""
    ready_hosts = [h for h in hosts if h.status == HostStatus.CONNECTED and h.vsan_traffic_enabled]

    if scenario == LabScenario.ROBO:
        witness = next((h for h in hosts if h.is_witness), None)
        if (
            witness is not None
            and witness.status == HostStatus.CONNECTED
            and not any(d.claimed_as == DiskRole.WITNESS for d in witness.disks)
        ):
            return False, "Error: You must claim the witness appliance metadata disk."

    invalid = [h for h in ready_hosts if not h.is_witness and not host_disks_ready(h, architecture)]
    if invalid:
        if architecture == VsanArchitecture.OSA:
            return False, f"Error OSA: Invalid disk group configuration on: {_short_names(invalid)}"
        return False, (
            f"Error ESA: At least {ESA_MIN_POOL_DISKS} NVMe disks required on: {_short_names(invalid)}"
        )
    return True, "ok"


def validate_host_selection(
    scenario: LabScenario, selected: List[Host]
) -> Tuple[bool, str]:
    """Minimum hosts to form the cluster."""
    if scenario == LabScenario.ROBO:
        has_witness = any(h.is_witness for h in selected)
        data_hosts = [h for h in selected if not h.is_witness]
        if not has_witness or len(data_hosts) < ROBO_DATA_HOSTS:
            return False, "Error ROBO: You must select both data nodes AND the Witness Appliance."
        return True, "ok"

    if len(selected) < STANDARD_MIN_HOSTS:
        return False, f"Critical error: A minimum of {STANDARD_MIN_HOSTS} hosts is required."
    return True, "ok"
