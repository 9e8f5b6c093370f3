"""
VM Deployer
Provisions the test workload: TEST_VM_COUNT VMs under one storage policy,
primary hosts round-robin across active data hosts, components laid out by
the placement engine.
"""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from vsanlab.config import MIN_ACTIVE_HOSTS_FOR_VMS, TEST_VM_COUNT, TEST_VM_SIZES_GB
from vsanlab.models import (
    Compliance,
    ComponentStatus,
    EventType,
    HostStatus,
    LabPhase,
    LabScenario,
    PowerState,
    StoragePolicyName,
    VirtualMachine,
    VMComponent,
    get_policy,
)
from vsanlab.results import CommandResult
from vsanlab.services.capacity_ledger import consumed_space_gb
from vsanlab.services.event_log import EventRecorder
from vsanlab.services.placement_engine import compute_components
from vsanlab.services.rebalancer import Rebalancer
from vsanlab.services.topology import TopologyModel, get_lab_session

logger = logging.getLogger(__name__)


class VMDeployer:

    def __init__(self, db: Session, rebalancer: Rebalancer):
        self.db = db
        self.rebalancer = rebalancer
        self.topology = TopologyModel(db)
        self.events = EventRecorder(db)

    def deploy_test_vms(self, policy_name: StoragePolicyName) -> CommandResult:
        """
        Deploy the test VMs under ``policy_name``.

        All-or-nothing: when the policy cannot be placed on the current
        hosts, no VM is created.
        """
        policy = get_policy(policy_name)
        lab = get_lab_session(self.db)
        if lab.phase != LabPhase.OPERATION:
            return CommandResult.invalid("Deploy vSAN before provisioning VMs.")
        if self.db.scalars(select(VirtualMachine)).first() is not None:
            return CommandResult.invalid("Test VMs are already deployed.")

        active = [
            h for h in self.topology.list_hosts()
            if h.status == HostStatus.CONNECTED and h.vsan_traffic_enabled
        ]
        data_hosts = [h for h in active if not h.is_witness]
        witness = next((h for h in active if h.is_witness), None)

        if lab.scenario == LabScenario.ROBO:
            if len(data_hosts) < 2 or witness is None:
                return CommandResult.invalid(
                    "Error: the two data nodes and the witness must be active to provision VMs."
                )
        elif len(active) < MIN_ACTIVE_HOSTS_FOR_VMS:
            return CommandResult.invalid(
                f"Error: at least {MIN_ACTIVE_HOSTS_FOR_VMS} active hosts are required to provision VMs."
            )

        data_host_ids = [h.id for h in data_hosts]
        witness_id = witness.id if lab.scenario == LabScenario.ROBO else None

        layouts = []
        for ordinal in range(1, TEST_VM_COUNT + 1):
            plans = compute_components(f"vm{ordinal}", ordinal, policy, data_host_ids, witness_id)
            if not plans:
                return CommandResult.invalid(
                    f"Error: policy {policy.name.value} needs at least {policy.min_hosts} hosts; "
                    f"only {len(data_host_ids)} eligible."
                )
            layouts.append(plans)

        now = datetime.utcnow()
        for ordinal, plans in enumerate(layouts, start=1):
            size_gb = TEST_VM_SIZES_GB[(ordinal - 1) % len(TEST_VM_SIZES_GB)]
            vm = VirtualMachine(
                id=f"vm{ordinal}",
                ordinal=ordinal,
                name=f"App-Server-{ordinal:02d}",
                host_id=data_host_ids[(ordinal - 1) % len(data_host_ids)],
                power=PowerState.POWERED_ON,
                compliance=Compliance.COMPLIANT,
                policy=policy.name,
                size_gb=size_gb,
                used_space_gb=consumed_space_gb(size_gb, policy),
                created_at=now,
                components=[
                    VMComponent(
                        id=plan.id,
                        position=position,
                        kind=plan.kind,
                        host_id=plan.host_id,
                        status=ComponentStatus.ACTIVE,
                    )
                    for position, plan in enumerate(plans)
                ],
            )
            self.db.add(vm)
        self.db.flush()

        lab.selected_policy = policy.name
        self.events.log_event(
            EventType.VM_DEPLOY,
            f"{TEST_VM_COUNT} test VMs provisioned with policy {policy.name.value} "
            f"(FTT={policy.ftt}, {policy.encoding.value}).",
        )
        self.rebalancer.schedule_pass(reason="test VMs deployed")
        return CommandResult.success(f"{TEST_VM_COUNT} VMs deployed with {policy.name.value}")
