"""
Cluster Setup Wizard
Guided lifecycle from scenario selection to an operational vSAN cluster:

    INTRO -> CREATE_CLUSTER -> ADD_HOSTS -> CONFIG_VSAN -> DEPLOYING -> OPERATION

Also covers day-2 topology changes (expansion host, host removal) and the
full lab reset.
"""

import logging
from typing import List, Sequence

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from vsanlab.config import VSAN_DEPLOY_DELAY
from vsanlab.models import (
    DiskHealth,
    DiskRole,
    EventType,
    Host,
    HostStatus,
    LabPhase,
    LabScenario,
    StoragePolicyName,
    VirtualMachine,
    VMComponent,
    VsanArchitecture,
    WorkflowJob,
    WorkflowKind,
)
from vsanlab.results import CommandResult
from vsanlab.scheduler import Scheduler
from vsanlab.services import validation_rules
from vsanlab.services.capacity_ledger import GB_PER_TB, total_raw_capacity_gb
from vsanlab.services.event_log import EventRecorder
from vsanlab.services.health_machine import HealthStateMachine
from vsanlab.services.jobs import complete_job, get_job, start_job
from vsanlab.services.rebalancer import Rebalancer
from vsanlab.services.topology import TopologyModel, get_lab_session

logger = logging.getLogger(__name__)

PRE_OPERATION_PHASES = (
    LabPhase.INTRO,
    LabPhase.CREATE_CLUSTER,
    LabPhase.ADD_HOSTS,
    LabPhase.CONFIG_VSAN,
)


class ClusterSetupService:

    def __init__(self, db: Session, scheduler: Scheduler, rebalancer: Rebalancer):
        self.db = db
        self.scheduler = scheduler
        self.rebalancer = rebalancer
        self.topology = TopologyModel(db)
        self.health = HealthStateMachine(db)
        self.events = EventRecorder(db)

    # ========================================================================
    # WIZARD
    # ========================================================================

    def select_scenario(self, scenario: LabScenario) -> CommandResult:
        scenario = LabScenario(scenario)
        lab = get_lab_session(self.db)
        if lab.phase not in (LabPhase.INTRO, LabPhase.CREATE_CLUSTER):
            return CommandResult.invalid("Reset the lab before choosing another scenario.")

        lab.scenario = scenario
        lab.cluster_created = False
        lab.phase = LabPhase.CREATE_CLUSTER
        self.topology.replace_inventory(scenario, lab.architecture)
        label = "Standard cluster (7 nodes)" if scenario == LabScenario.STANDARD else "ROBO two-node cluster"
        self.events.log_event(EventType.LAB_SETUP, f"Lab initialized: {label}.")
        return CommandResult.success(f"Scenario {scenario.value} selected")

    def set_architecture(self, architecture: VsanArchitecture) -> CommandResult:
        """Switch OSA/ESA. Regenerates the inventory and drops all claims."""
        architecture = VsanArchitecture(architecture)
        lab = get_lab_session(self.db)
        if lab.phase not in PRE_OPERATION_PHASES:
            return CommandResult.invalid("The architecture is fixed once vSAN is deployed.")
        if lab.architecture == architecture:
            return CommandResult.success(f"Architecture already {architecture.value}")

        lab.architecture = architecture
        lab.cluster_created = False
        if lab.phase != LabPhase.INTRO:
            lab.phase = LabPhase.CREATE_CLUSTER
        self.db.execute(delete(VMComponent))
        self.db.execute(delete(VirtualMachine))
        self.topology.replace_inventory(lab.scenario, architecture)
        self.events.log_event(EventType.LAB_SETUP, f"Architecture changed to vSAN {architecture.value}.")
        return CommandResult.success(f"Architecture set to {architecture.value}")

    def create_cluster(self) -> CommandResult:
        lab = get_lab_session(self.db)
        if lab.phase != LabPhase.CREATE_CLUSTER:
            return CommandResult.invalid(f"Cannot create the cluster in phase {lab.phase.value}.")
        lab.cluster_created = True
        lab.phase = LabPhase.ADD_HOSTS
        self.events.log_event(EventType.LAB_SETUP, "Cluster object created in vCenter.")
        return CommandResult.success("Cluster created")

    def add_hosts(self, host_ids: Sequence[str]) -> CommandResult:
        lab = get_lab_session(self.db)
        if lab.phase != LabPhase.ADD_HOSTS:
            return CommandResult.invalid(f"Cannot add hosts in phase {lab.phase.value}.")

        selected: List[Host] = []
        for host_id in dict.fromkeys(host_ids):
            host = self.topology.get_host(host_id)
            if host.in_cluster:
                return CommandResult.invalid(f"Host {host.short_name} is already in the cluster.")
            selected.append(host)

        ok, msg = validation_rules.validate_host_selection(lab.scenario, selected)
        if not ok:
            return CommandResult.invalid(msg)

        for host in selected:
            self.topology.join(host.id)
            self.events.log_event(EventType.HOST_JOIN, f"Host {host.name} added to the cluster.", host_id=host.id)
        lab.phase = LabPhase.CONFIG_VSAN
        return CommandResult.success(f"{len(selected)} host(s) added")

    def toggle_vsan_traffic(self, host_id: str) -> CommandResult:
        host = self.topology.get_host(host_id)
        if not host.in_cluster:
            return CommandResult.invalid(f"Host {host.short_name} is not part of the cluster.")
        was_eligible = self._rebalance_eligible(host)
        self.topology.set_traffic(host.id, not host.vsan_traffic_enabled)
        state = "enabled" if host.vsan_traffic_enabled else "disabled"
        self.events.log_event(
            EventType.HOST_CONFIG,
            f"vSAN traffic {state} on vmk1 of {host.short_name}.",
            host_id=host.id,
        )
        self._maybe_rebalance_expansion(host, was_eligible)
        return CommandResult.success(f"vSAN traffic {state} on {host.short_name}")

    def claim_disk(self, host_id: str, disk_id: str, role: DiskRole) -> CommandResult:
        """
        Toggle a disk claim. Claiming a disk with its current role releases it.
        """
        role = DiskRole(role)
        host = self.topology.get_host(host_id)
        disk = self.topology.get_disk(disk_id)
        if disk.host_id != host.id:
            return CommandResult.invalid(f"Disk {disk.id} does not belong to host {host.short_name}.")

        lab = get_lab_session(self.db)
        ok, msg = validation_rules.validate_claim(host, disk, role, lab.architecture)
        if not ok:
            return CommandResult.invalid(msg)

        was_eligible = self._rebalance_eligible(host)
        new_role = validation_rules.resolve_claim_role(disk, role)
        self.topology.set_disk_claim(host.id, disk.id, new_role)
        if new_role == DiskRole.UNCLAIMED:
            message = f"Disk {disk.id} on {host.short_name} released."
        else:
            message = f"Disk {disk.id} on {host.short_name} claimed as {new_role.value}."
        self.events.log_event(EventType.DISK_CLAIM, message, host_id=host.id, disk_id=disk.id)
        self._maybe_rebalance_expansion(host, was_eligible)
        return CommandResult.success(message)

    def validate_network(self) -> CommandResult:
        ok, msg = validation_rules.validate_network(self.topology.cluster_hosts())
        if not ok:
            return CommandResult.invalid(msg)
        return CommandResult.success("Network validation passed")

    def validate_disks(self) -> CommandResult:
        lab = get_lab_session(self.db)
        ok, msg = validation_rules.validate_disks(self.topology.cluster_hosts(), lab.architecture, lab.scenario)
        if not ok:
            return CommandResult.invalid(msg)
        return CommandResult.success("Disk configuration validated")

    def deploy_vsan(self) -> CommandResult:
        """
        Validate network and disks, then enable vSAN.

        The cluster becomes operational VSAN_DEPLOY_DELAY later.
        """
        lab = get_lab_session(self.db)
        if lab.phase != LabPhase.CONFIG_VSAN:
            return CommandResult.invalid(f"Cannot deploy vSAN in phase {lab.phase.value}.")
        for check in (self.validate_network, self.validate_disks):
            result = check()
            if not result.ok:
                return result

        lab.phase = LabPhase.DEPLOYING
        job = start_job(self.db, WorkflowKind.VSAN_DEPLOY)
        self.events.log_event(EventType.VSAN_DEPLOY, f"Enabling vSAN {lab.architecture.value}...")
        self.scheduler.call_later(VSAN_DEPLOY_DELAY, self._finalize_deploy, job.id)
        return CommandResult.success("vSAN deployment started")

    def _finalize_deploy(self, job_id: int) -> None:
        job = get_job(self.db, job_id)
        if job is None:
            return
        lab = get_lab_session(self.db)
        lab.phase = LabPhase.OPERATION
        complete_job(job)

        raw_tb = total_raw_capacity_gb(self.topology.list_hosts()) / GB_PER_TB
        self.events.log_event(
            EventType.VSAN_DEPLOY,
            f"vSAN {lab.architecture.value} datastore created. Raw capacity: {raw_tb:.1f} TB.",
        )
        if lab.scenario == LabScenario.ROBO:
            self.events.log_event(
                EventType.VSAN_DEPLOY,
                "Two-node cluster configured. Witness traffic separated.",
            )

    # ========================================================================
    # DAY-2 TOPOLOGY
    # ========================================================================

    def add_expansion_host(self, host_id: str) -> CommandResult:
        """
        Join an unmanaged host to the operational cluster.

        The host starts with vSAN traffic off and all disks unclaimed; DRS
        starts using it once it carries vSAN traffic and storage.
        """
        host = self.topology.get_host(host_id)
        lab = get_lab_session(self.db)
        if lab.phase != LabPhase.OPERATION:
            return CommandResult.invalid("Expansion hosts can only join an operational cluster.")
        if host.in_cluster:
            return CommandResult.invalid(f"Host {host.short_name} is already in the cluster.")
        if host.is_witness:
            return CommandResult.invalid("The witness appliance cannot be used as an expansion host.")

        self.topology.join(host.id)
        host.vsan_traffic_enabled = False
        for disk in host.disks:
            disk.claimed_as = DiskRole.UNCLAIMED
            disk.health = DiskHealth.HEALTHY
        self.events.log_event(
            EventType.HOST_JOIN,
            f"Expansion host {host.name} added to the cluster. Configure vmk1 and claim its disks.",
            host_id=host.id,
        )
        return CommandResult.success(f"Host {host.short_name} joined the cluster")

    def leave_cluster(self, host_id: str) -> CommandResult:
        host = self.topology.get_host(host_id)
        lab = get_lab_session(self.db)
        if not host.in_cluster:
            return CommandResult.invalid(f"Host {host.short_name} is not part of the cluster.")
        if host.id in (lab.maintenance_host_id, lab.upgrading_host_id):
            return CommandResult.rejected(f"Host {host.short_name} has a workflow in progress.")

        vm_refs = self.db.scalars(select(VirtualMachine).where(VirtualMachine.host_id == host.id)).first()
        component_refs = self.db.scalars(select(VMComponent).where(VMComponent.host_id == host.id)).first()
        if vm_refs is not None or component_refs is not None:
            return CommandResult.invalid(
                f"Host {host.short_name} still holds VMs or vSAN components. Evacuate it first."
            )

        self.topology.leave(host.id)
        self.events.log_event(EventType.HOST_LEAVE, f"Host {host.name} removed from the cluster.", host_id=host.id)
        return CommandResult.success(f"Host {host.short_name} left the cluster")

    def _rebalance_eligible(self, host: Host) -> bool:
        return any(h.id == host.id for h in self.rebalancer.eligible_hosts())

    def _maybe_rebalance_expansion(self, host: Host, was_eligible: bool) -> None:
        lab = get_lab_session(self.db)
        if lab.phase != LabPhase.OPERATION or was_eligible or not self._rebalance_eligible(host):
            return
        if self.db.scalars(select(VirtualMachine)).first() is None:
            return
        self.rebalancer.schedule_pass(reason=f"host {host.short_name} now eligible", require_healthy=False)

    # ========================================================================
    # RESET
    # ========================================================================

    def reset_lab(self) -> CommandResult:
        """
        Return to the initial state: STANDARD/OSA inventory, no VMs, no
        pending workflows, Healthy, empty event log.
        """
        self.scheduler.clear()
        lab = get_lab_session(self.db)
        self.db.execute(delete(VMComponent))
        self.db.execute(delete(VirtualMachine))
        self.db.execute(delete(WorkflowJob))
        self.db.expire_all()

        lab.scenario = LabScenario.STANDARD
        lab.architecture = VsanArchitecture.OSA
        lab.phase = LabPhase.INTRO
        lab.cluster_created = False
        lab.selected_policy = StoragePolicyName.RAID1_FTT1
        lab.maintenance_host_id = None
        lab.maintenance_progress = 0
        lab.upgrading_host_id = None
        lab.upgrade_progress = 0

        self.topology.replace_inventory(LabScenario.STANDARD, VsanArchitecture.OSA)
        self.health.reset()
        self.events.clear()
        logger.info("Lab reset to initial state")
        return CommandResult.success("Lab reset")
