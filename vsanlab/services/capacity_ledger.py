"""
Capacity Ledger
Pure functions over the current hosts and VMs. Nothing is cached: every figure
is recomputed from the entities passed in.
"""

import math
from decimal import Decimal
from typing import Iterable

from vsanlab.models import DiskRole, Host, HostStatus, PolicySpec, VirtualMachine

RAW_CAPACITY_ROLES = (DiskRole.CAPACITY, DiskRole.STORAGE_POOL)
CONTRIBUTING_STATUSES = (HostStatus.CONNECTED, HostStatus.MAINTENANCE)
GB_PER_TB = 1000


def consumed_space_gb(size_gb: int, policy: PolicySpec) -> int:
    """ceil(logical size x policy multiplier), computed in decimal."""
    return int(math.ceil(Decimal(size_gb) * policy.multiplier))


def total_raw_capacity_gb(hosts: Iterable[Host]) -> int:
    total = 0
    for host in hosts:
        if host.is_witness or host.status not in CONTRIBUTING_STATUSES:
            continue
        for disk in host.disks:
            if disk.claimed_as in RAW_CAPACITY_ROLES:
                total += disk.capacity_gb
    return total


def total_consumed_gb(vms: Iterable[VirtualMachine]) -> int:
    return sum(vm.used_space_gb for vm in vms)


def capacity_summary(hosts: Iterable[Host], vms: Iterable[VirtualMachine]) -> dict:
    raw = total_raw_capacity_gb(hosts)
    consumed = total_consumed_gb(vms)
    return {
        "raw_capacity_gb": raw,
        "consumed_gb": consumed,
        "free_gb": raw - consumed,
        "raw_capacity_tb": round(raw / GB_PER_TB, 1),
        "consumed_tb": round(consumed / GB_PER_TB, 2),
        "usage_percent": round(consumed / raw * 100, 1) if raw > 0 else 0.0,
    }
