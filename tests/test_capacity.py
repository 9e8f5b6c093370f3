import pytest

from vsanlab.models import DiskRole, HostStatus, LabScenario, StoragePolicyName, VsanArchitecture, get_policy
from vsanlab.services.capacity_ledger import capacity_summary, consumed_space_gb, total_raw_capacity_gb
from vsanlab.services.topology import generate_inventory


@pytest.mark.parametrize(
    "size,policy_name,expected",
    [
        (100, StoragePolicyName.RAID1_FTT1, 200),
        (300, StoragePolicyName.RAID5_FTT1, 399),
        (50, StoragePolicyName.RAID5_FTT1, 67),
        (100, StoragePolicyName.RAID6_FTT2, 150),
        (500, StoragePolicyName.RAID1_FTT3, 2000),
    ],
)
def test_consumed_space_rounds_up(size, policy_name, expected):
    assert consumed_space_gb(size, get_policy(policy_name)) == expected


def _claimed_inventory(count):
    hosts = generate_inventory(LabScenario.STANDARD, VsanArchitecture.OSA)[:count]
    for host in hosts:
        host.status = HostStatus.CONNECTED
        host.disks[0].claimed_as = DiskRole.CACHE
        for disk in host.disks[1:]:
            disk.claimed_as = DiskRole.CAPACITY
    return hosts


def test_raw_capacity_counts_capacity_tier_only():
    hosts = _claimed_inventory(3)
    # 2 x 4000 GB HDD per host, the 800 GB cache SSD excluded
    assert total_raw_capacity_gb(hosts) == 24000


def test_disconnected_hosts_do_not_contribute():
    hosts = _claimed_inventory(3)
    hosts[0].status = HostStatus.DISCONNECTED
    hosts[1].status = HostStatus.MAINTENANCE
    assert total_raw_capacity_gb(hosts) == 16000


def test_summary_with_no_capacity():
    summary = capacity_summary([], [])
    assert summary["raw_capacity_gb"] == 0
    assert summary["usage_percent"] == 0.0
