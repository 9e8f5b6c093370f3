"""
Topology Model
Canonical view of hosts, their disks and claim state, plus the scenario
inventory each lab session starts from.

All mutation primitives are total over valid ids. An unknown id is a
programming error and raises UnknownEntityError.
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from vsanlab.config import INITIAL_VERSION
from vsanlab.models import (
    Disk,
    DiskHealth,
    DiskMedia,
    DiskRole,
    DiskTier,
    Host,
    HostStatus,
    LabScenario,
    LabSession,
    NetworkIsolation,
    VsanArchitecture,
)
from vsanlab.results import UnknownEntityError

logger = logging.getLogger(__name__)

WITNESS_HOST_ID = "witness"


# ============================================================================
# SCENARIO INVENTORY
# ============================================================================

def _disk(disk_id, media, tier, capacity_gb, size_label, position) -> Disk:
    return Disk(
        id=disk_id,
        media=media,
        tier=tier,
        capacity_gb=capacity_gb,
        size_label=size_label,
        position=position,
        claimed_as=DiskRole.UNCLAIMED,
        health=DiskHealth.HEALTHY,
    )


def _standard_disks(i: int, architecture: VsanArchitecture) -> List[Disk]:
    if architecture == VsanArchitecture.ESA:
        return [
            _disk(f"nvme.500{i}{n}", DiskMedia.NVME, DiskTier.STORAGE_POOL, 1920, "1.92 TB", n)
            for n in (1, 2, 3)
        ]
    return [
        _disk(f"naa.500{i}", DiskMedia.SSD, DiskTier.CACHE, 800, "800 GB", 0),
        _disk(f"naa.600{i}1", DiskMedia.HDD, DiskTier.CAPACITY, 4000, "4 TB", 1),
        _disk(f"naa.600{i}2", DiskMedia.HDD, DiskTier.CAPACITY, 4000, "4 TB", 2),
    ]


def _robo_disks(i: int, architecture: VsanArchitecture) -> List[Disk]:
    if architecture == VsanArchitecture.ESA:
        return [
            _disk(f"nvme.500{i}{n}", DiskMedia.NVME, DiskTier.STORAGE_POOL, 3840, "3.84 TB", n)
            for n in (1, 2)
        ]
    return [
        _disk(f"naa.500{i}", DiskMedia.SSD, DiskTier.CACHE, 400, "400 GB", 0),
        _disk(f"naa.600{i}1", DiskMedia.HDD, DiskTier.CAPACITY, 1920, "1.92 TB", 1),
        _disk(f"naa.600{i}2", DiskMedia.HDD, DiskTier.CAPACITY, 1920, "1.92 TB", 2),
    ]


def _host(host_id, name, ip, ordinal, disks, is_witness=False) -> Host:
    return Host(
        id=host_id,
        name=name,
        ip_address=ip,
        version=INITIAL_VERSION,
        is_witness=is_witness,
        ordinal=ordinal,
        status=HostStatus.UNMANAGED,
        isolation=NetworkIsolation.NORMAL,
        vsan_traffic_enabled=False,
        disks=disks,
    )


def generate_inventory(scenario: LabScenario, architecture: VsanArchitecture) -> List[Host]:
    """Build the unmanaged host inventory a scenario starts from."""
    if scenario == LabScenario.STANDARD:
        return [
            _host(
                f"h{i}",
                f"esxi0{i}.riveritatech.local",
                f"192.168.10.{10 + i}",
                i,
                _standard_disks(i, architecture),
            )
            for i in range(1, 8)
        ]

    hosts = [
        _host(
            f"h{i}",
            f"esxi0{i}-robo.riverita.local",
            f"10.10.10.{10 + i}",
            i,
            _robo_disks(i, architecture),
        )
        for i in (1, 2)
    ]
    hosts.append(
        _host(
            WITNESS_HOST_ID,
            "vsan-witness-01.riverita.local",
            "172.16.20.5",
            3,
            [_disk("wit.meta.1", DiskMedia.SSD, DiskTier.WITNESS_METADATA, 0, "10 GB", 0)],
            is_witness=True,
        )
    )
    return hosts


def get_lab_session(db: Session) -> LabSession:
    lab = db.get(LabSession, 1)
    if lab is None:
        raise RuntimeError("Lab session not initialized")
    return lab


# ============================================================================
# TOPOLOGY MODEL
# ============================================================================

class TopologyModel:
    """Read access and mutation primitives over hosts and disks."""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------ reads

    def get_host(self, host_id: str) -> Host:
        host = self.db.get(Host, host_id)
        if host is None:
            raise UnknownEntityError("Host", host_id)
        return host

    def get_disk(self, disk_id: str) -> Disk:
        disk = self.db.get(Disk, disk_id)
        if disk is None:
            raise UnknownEntityError("Disk", disk_id)
        return disk

    def list_hosts(self) -> List[Host]:
        """All hosts in discovery order."""
        return list(self.db.scalars(select(Host).order_by(Host.ordinal)).all())

    def cluster_hosts(self) -> List[Host]:
        return [h for h in self.list_hosts() if h.in_cluster]

    def connected_hosts(self, include_witness: bool = True) -> List[Host]:
        return [
            h
            for h in self.list_hosts()
            if h.status == HostStatus.CONNECTED and (include_witness or not h.is_witness)
        ]

    def surviving_data_hosts(self, exclude_id: Optional[str] = None) -> List[Host]:
        """Connected, non-witness hosts other than ``exclude_id``, discovery order."""
        return [h for h in self.connected_hosts(include_witness=False) if h.id != exclude_id]

    # -------------------------------------------------------------- mutations

    def join(self, host_id: str) -> Host:
        host = self.get_host(host_id)
        host.status = HostStatus.CONNECTED
        host.isolation = NetworkIsolation.NORMAL
        return host

    def leave(self, host_id: str) -> Host:
        """Detach a host to Unmanaged and drop its cluster configuration."""
        host = self.get_host(host_id)
        host.status = HostStatus.UNMANAGED
        host.isolation = NetworkIsolation.NORMAL
        host.vsan_traffic_enabled = False
        for disk in host.disks:
            disk.claimed_as = DiskRole.UNCLAIMED
        return host

    def set_disk_claim(self, host_id: str, disk_id: str, role: DiskRole) -> Disk:
        host = self.get_host(host_id)
        disk = self.get_disk(disk_id)
        if disk.host_id != host.id:
            raise UnknownEntityError("Disk", f"{disk_id}@{host_id}")
        disk.claimed_as = role
        return disk

    def set_disk_health(self, disk_id: str, health: DiskHealth) -> Disk:
        disk = self.get_disk(disk_id)
        disk.health = health
        return disk

    def set_host_status(self, host_id: str, status: HostStatus) -> Host:
        host = self.get_host(host_id)
        host.status = status
        return host

    def set_isolation(self, host_id: str, isolation: NetworkIsolation) -> Host:
        host = self.get_host(host_id)
        host.isolation = isolation
        return host

    def set_traffic(self, host_id: str, enabled: bool) -> Host:
        host = self.get_host(host_id)
        host.vsan_traffic_enabled = enabled
        return host

    def replace_inventory(self, scenario: LabScenario, architecture: VsanArchitecture) -> List[Host]:
        """Discard every host/disk and load the scenario's fresh inventory."""
        for host in self.list_hosts():
            self.db.delete(host)
        self.db.flush()
        hosts = generate_inventory(scenario, architecture)
        self.db.add_all(hosts)
        self.db.flush()
        logger.debug(f"Inventory loaded: {len(hosts)} hosts ({scenario.value}/{architecture.value})")
        return hosts
