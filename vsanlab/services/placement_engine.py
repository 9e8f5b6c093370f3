"""
Placement Engine
Computes the component layout (VM home, data replicas / erasure segments,
witnesses) of one VM for a storage policy and the current eligible hosts.

Layout rules:
1. Exactly one VM Home, pinned to the first eligible host
2. Replica/witness component j goes to host (ordinal + j + 1) mod n, so
   successive VMs rotate across the cluster deterministically
3. Two-node + witness topologies ignore the policy: home + replica on node 1,
   replica on node 2, witness on the witness appliance
4. No two replica/witness components of a VM share a host
5. Not enough hosts for the policy -> empty layout (not satisfiable now)
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from vsanlab.models import ComponentKind, PolicySpec


@dataclass(frozen=True)
class ComponentPlan:
    id: str
    kind: ComponentKind
    host_id: str


def compute_components(
    vm_id: str,
    ordinal: int,
    policy: PolicySpec,
    data_host_ids: Sequence[str],
    witness_host_id: Optional[str] = None,
) -> List[ComponentPlan]:
    """
    Lay out a VM's components.

    Args:
        vm_id: VM identity, used as component id prefix
        ordinal: VM sequence number (vm<N> -> N), seeds the round robin
        policy: Storage policy to satisfy
        data_host_ids: Eligible non-witness hosts, discovery order
        witness_host_id: Dedicated witness host (two-node topology only)

    Returns:
        Component plans, or [] when the policy cannot be satisfied
    """
    if witness_host_id is not None:
        return _two_node_layout(vm_id, data_host_ids, witness_host_id)

    host_ids = list(data_host_ids)
    n = len(host_ids)
    if n < policy.min_hosts or n < policy.placed_components:
        return []

    def pick(offset: int) -> str:
        return host_ids[(ordinal + offset) % n]

    plans = [ComponentPlan(f"{vm_id}-home", ComponentKind.VM_HOME, host_ids[0])]
    offset = 1
    for d in range(1, policy.data_components + 1):
        plans.append(ComponentPlan(f"{vm_id}-d{d}", ComponentKind.DATA_REPLICA, pick(offset)))
        offset += 1
    for w in range(1, policy.witness_components + 1):
        plans.append(ComponentPlan(f"{vm_id}-w{w}", ComponentKind.WITNESS, pick(offset)))
        offset += 1
    return plans


def _two_node_layout(vm_id: str, data_host_ids: Sequence[str], witness_host_id: str) -> List[ComponentPlan]:
    if len(data_host_ids) < 2:
        return []
    node1, node2 = data_host_ids[0], data_host_ids[1]
    return [
        ComponentPlan(f"{vm_id}-home", ComponentKind.VM_HOME, node1),
        ComponentPlan(f"{vm_id}-data-1", ComponentKind.DATA_REPLICA, node1),
        ComponentPlan(f"{vm_id}-data-2", ComponentKind.DATA_REPLICA, node2),
        ComponentPlan(f"{vm_id}-witness", ComponentKind.WITNESS, witness_host_id),
    ]


def redundancy_hosts(plans: Sequence) -> List[str]:
    """Host ids of the replica/witness entries (VM Home excluded), plans or stored components."""
    return [p.host_id for p in plans if p.kind != ComponentKind.VM_HOME]
