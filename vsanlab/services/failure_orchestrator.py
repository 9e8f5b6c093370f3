"""
Failure & Recovery Orchestration
Host, network-partition and disk fault injection, vSphere HA restart of
affected VMs, and entity-scoped recovery driving the vSAN resync.
Implements FTT admission guard, cascading vs. localized disk failures and
step-wise resync progress.
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from vsanlab.config import (
    RESYNC_EVENT_EVERY_PERCENT,
    RESYNC_STEP_DELAY,
    RESYNC_STEP_PERCENT,
)
from vsanlab.models import (
    Compliance,
    ComponentStatus,
    DiskHealth,
    DiskRole,
    EventType,
    FailureKind,
    Host,
    HostStatus,
    LabPhase,
    LabScenario,
    NetworkIsolation,
    PowerState,
    Severity,
    VirtualMachine,
    VsanArchitecture,
    WorkflowKind,
    WorkflowPhase,
    get_policy,
)
from vsanlab.results import CommandResult
from vsanlab.scheduler import Scheduler
from vsanlab.services.event_log import EventRecorder
from vsanlab.services.health_machine import HealthStateMachine
from vsanlab.services.jobs import complete_job, get_job, start_job
from vsanlab.services.rebalancer import Rebalancer
from vsanlab.services.topology import TopologyModel, get_lab_session

logger = logging.getLogger(__name__)

LOCALIZED_DISK_LABELS = {
    DiskRole.CAPACITY: "capacity disk",
    DiskRole.STORAGE_POOL: "storage pool disk",
    DiskRole.WITNESS: "witness metadata disk",
}


class FailureOrchestrator:
    """
    Injects faults and drives recovery.
    Mutates topology, VM placement and cluster health.
    """

    def __init__(self, db: Session, scheduler: Scheduler, rebalancer: Rebalancer):
        self.db = db
        self.scheduler = scheduler
        self.rebalancer = rebalancer
        self.topology = TopologyModel(db)
        self.health = HealthStateMachine(db)
        self.events = EventRecorder(db)

    # ========================================================================
    # ADMISSION
    # ========================================================================

    def active_failures(self) -> int:
        """
        Hosts currently consuming the failure budget.

        A host counts once whether it is Disconnected, network-isolated or in
        Maintenance, regardless of what took it out (plain disconnect,
        partition or cache disk-group loss).
        """
        return sum(
            1
            for h in self.topology.cluster_hosts()
            if h.status in (HostStatus.DISCONNECTED, HostStatus.MAINTENANCE)
            or h.isolation == NetworkIsolation.ISOLATED
        )

    def active_ftt(self) -> int:
        return get_policy(get_lab_session(self.db).selected_policy).ftt

    def workflow_blocker(self) -> Optional[str]:
        """Reason a new fault/recovery workflow cannot start now, if any."""
        if self.health.is_resyncing():
            return "vSAN resync is already in progress. Wait for it to finish."
        lab = get_lab_session(self.db)
        if lab.maintenance_host_id is not None:
            evacuating = self.topology.get_host(lab.maintenance_host_id)
            return f"Host {evacuating.short_name} is being evacuated into maintenance mode."
        return None

    def _injection_blocker(self) -> Optional[CommandResult]:
        lab = get_lab_session(self.db)
        if lab.phase != LabPhase.OPERATION:
            return CommandResult.invalid("The vSAN cluster is not operational yet.")
        if self.db.scalars(select(VirtualMachine)).first() is None:
            return CommandResult.invalid("No VMs to simulate failures on. Deploy VMs first.")
        reason = self.workflow_blocker()
        if reason:
            return CommandResult.rejected(reason)
        return None

    def _host_failure_guard(self, host: Host) -> Optional[CommandResult]:
        lab = get_lab_session(self.db)
        if lab.scenario == LabScenario.ROBO:
            # Two-node tolerance: one reachable data node is enough.
            if not self.topology.surviving_data_hosts(exclude_id=host.id):
                return CommandResult.rejected(
                    f"Failing host {host.short_name} would leave no reachable data node. Failure blocked."
                )
            return None

        ftt = self.active_ftt()
        if self.active_failures() + 1 > ftt:
            return CommandResult.rejected(
                f"Critical error: failing host {host.short_name} would exceed the tolerance "
                f"FTT={ftt}. Failure blocked."
            )
        return None

    # ========================================================================
    # FAILURE INJECTION
    # ========================================================================

    def inject_failure(self, kind: FailureKind, target_id: str) -> CommandResult:
        kind = FailureKind(kind)
        if kind == FailureKind.DISK:
            return self.fail_disk(target_id)
        return self.fail_host(target_id, partition=(kind == FailureKind.NETWORK))

    def fail_host(self, host_id: str, partition: bool = False) -> CommandResult:
        """
        Simulate a host crash or a network partition.

        Steps:
        1. Validate cluster state and target host
        2. Enforce the FTT admission guard
        3. Disconnect (and isolate) the host, health -> Critical
        4. HA-restart VMs from the host, flag VMs with components on it
        """
        host = self.topology.get_host(host_id)
        blocked = self._injection_blocker()
        if blocked:
            return blocked
        if host.status != HostStatus.CONNECTED:
            return CommandResult.invalid(
                f"Host {host.short_name} is not connected (current state: {host.status.value})."
            )
        blocked = self._host_failure_guard(host)
        if blocked:
            return blocked

        if partition:
            self.topology.set_isolation(host.id, NetworkIsolation.ISOLATED)
            self.events.log_event(
                EventType.NETWORK_PARTITION,
                f"Simulated network partition: host {host.name} lost vSAN quorum "
                f"(network isolation). State: CRITICAL.",
                Severity.ERROR,
                host_id=host.id,
            )
        else:
            self.events.log_event(
                EventType.HOST_FAILURE,
                f"Simulated failure: host {host.name} lost connectivity. State: CRITICAL.",
                Severity.ERROR,
                host_id=host.id,
            )

        affected = self._apply_host_loss(host)
        return CommandResult.success(
            f"Host {host.short_name} {'partitioned' if partition else 'failed'}: "
            f"{affected} VM(s) affected"
        )

    def fail_disk(self, disk_id: str) -> CommandResult:
        """
        Simulate a disk failure.

        OSA cache disk -> the whole disk group is lost and the host goes down.
        OSA capacity / ESA pool disk -> localized, redundancy degraded only.
        """
        disk = self.topology.get_disk(disk_id)
        host = disk.host
        blocked = self._injection_blocker()
        if blocked:
            return blocked
        if disk.health != DiskHealth.HEALTHY or host.status != HostStatus.CONNECTED:
            return CommandResult.invalid(
                "Error: the disk has already failed or its host is disconnected."
            )
        if disk.claimed_as == DiskRole.UNCLAIMED:
            return CommandResult.invalid(f"Disk {disk.id} is not claimed by vSAN.")

        architecture = get_lab_session(self.db).architecture
        if architecture == VsanArchitecture.OSA and disk.claimed_as == DiskRole.CACHE:
            self.events.log_event(
                EventType.DISK_FAILURE,
                f"Simulated critical failure: cache disk {disk.id} failed. "
                f"Disk group lost entirely. State: CRITICAL.",
                Severity.ERROR,
                host_id=host.id,
                disk_id=disk.id,
            )
            for member in host.disks:
                member.health = DiskHealth.FAILED
            affected = self._apply_host_loss(host, ha_reason="disk group loss")
            return CommandResult.success(
                f"Cache disk {disk.id} failed: host {host.short_name} disconnected, "
                f"{affected} VM(s) affected"
            )

        self.topology.set_disk_health(disk.id, DiskHealth.FAILED)
        self.health.mark_warning()
        flagged = 0
        for vm in self._vms():
            on_host = [c for c in vm.components if c.host_id == host.id]
            for component in on_host:
                component.status = ComponentStatus.STALE
            if on_host:
                vm.compliance = Compliance.NON_COMPLIANT
                flagged += 1

        tier = LOCALIZED_DISK_LABELS[disk.claimed_as]
        self.events.log_event(
            EventType.DISK_FAILURE,
            f"Simulated failure: {tier} {disk.id} on {host.name} failed "
            f"({architecture.value}). VMs stay online. State: WARNING.",
            Severity.ERROR,
            host_id=host.id,
            disk_id=disk.id,
        )
        return CommandResult.success(f"Disk {disk.id} failed: {flagged} VM(s) non-compliant")

    def _apply_host_loss(self, host: Host, ha_reason: Optional[str] = None) -> int:
        """Shared effect path of host failure, partition and cache-group loss."""
        self.topology.set_host_status(host.id, HostStatus.DISCONNECTED)
        self.health.mark_critical()

        survivors = self.topology.surviving_data_hosts(exclude_id=host.id)
        next_index = 0
        affected = 0
        for vm in self._vms():
            on_host = [c for c in vm.components if c.host_id == host.id]
            for component in on_host:
                component.status = ComponentStatus.ABSENT

            if vm.host_id == host.id:
                affected += 1
                vm.compliance = Compliance.NON_COMPLIANT
                if not survivors:
                    vm.power = PowerState.POWERED_OFF
                    self.events.log_event(
                        EventType.HA_RESTART,
                        f"vSphere HA: no surviving host for VM {vm.name}. VM powered off.",
                        Severity.ERROR,
                        vm_id=vm.id,
                    )
                    continue
                target = survivors[next_index % len(survivors)]
                next_index += 1
                vm.host_id = target.id
                vm.power = PowerState.POWERED_ON
                prefix = f"vSphere HA ({ha_reason})" if ha_reason else "vSphere HA"
                self.events.log_event(
                    EventType.HA_RESTART,
                    f"{prefix}: restarting VM {vm.name} on host {target.short_name}.",
                    host_id=target.id,
                    vm_id=vm.id,
                )
            elif on_host:
                affected += 1
                vm.compliance = Compliance.NON_COMPLIANT

        self.events.log_event(
            EventType.HOST_FAILURE,
            "vSAN starts rebuilding the components of the affected VMs.",
            host_id=host.id,
        )
        return affected

    def _vms(self) -> List[VirtualMachine]:
        return list(self.db.scalars(select(VirtualMachine).order_by(VirtualMachine.ordinal)).all())

    # ========================================================================
    # RECOVERY & RESYNC
    # ========================================================================

    def recover(self, entity_id: str, kind: FailureKind) -> CommandResult:
        """
        Restore a failed entity and resync the cluster.

        No-op when the entity is already healthy. Rejected while another
        resync or an evacuation is running.
        """
        kind = FailureKind(kind)
        if kind == FailureKind.DISK:
            disk = self.topology.get_disk(entity_id)
            host = disk.host
            label = f"Disk {disk.id}"
            healthy = disk.health == DiskHealth.HEALTHY and host.status == HostStatus.CONNECTED
        else:
            disk = None
            host = self.topology.get_host(entity_id)
            label = f"{'Host' if kind == FailureKind.HOST else 'Network'} {host.short_name}"
            if kind == FailureKind.HOST:
                healthy = host.status == HostStatus.CONNECTED and host.isolation == NetworkIsolation.NORMAL
            else:
                healthy = host.isolation == NetworkIsolation.NORMAL

        reason = self.workflow_blocker()
        if reason:
            return CommandResult.rejected(reason)
        if healthy:
            return CommandResult.success(f"{label} is already healthy. Nothing to recover.")
        lab = get_lab_session(self.db)
        if lab.upgrading_host_id == host.id:
            return CommandResult.rejected(f"Host {host.short_name} is being upgraded.")

        self.events.log_event(
            EventType.RECOVERY_START,
            f"Recovery started for {label}. Starting vSAN resynchronization...",
            host_id=host.id,
            disk_id=disk.id if disk is not None else None,
        )

        if disk is None:
            self.topology.set_host_status(host.id, HostStatus.CONNECTED)
            self.topology.set_isolation(host.id, NetworkIsolation.NORMAL)
            if kind == FailureKind.NETWORK:
                self.events.log_event(
                    EventType.RECOVERY_START,
                    f"Host {host.short_name} rejoined the vSAN network. Quorum restored.",
                    host_id=host.id,
                )
        else:
            # A disconnected host gets its whole failed disk group replaced.
            replaced_group = host.status == HostStatus.DISCONNECTED
            for member in host.disks:
                if member.id == disk.id or (replaced_group and member.claimed_as != DiskRole.UNCLAIMED):
                    member.health = DiskHealth.HEALTHY
            self.topology.set_host_status(host.id, HostStatus.CONNECTED)
            self.topology.set_isolation(host.id, NetworkIsolation.NORMAL)
            self.events.log_event(
                EventType.RECOVERY_START,
                f"Disk {disk.id} replaced successfully.",
                host_id=host.id,
                disk_id=disk.id,
            )

        self.start_resync(target_id=entity_id)
        return CommandResult.success(f"Recovery of {label} started; resync in progress")

    def start_resync(self, target_id: Optional[str] = None) -> int:
        self.health.begin_resync()
        job = start_job(self.db, WorkflowKind.RESYNC, target_id=target_id, phase=WorkflowPhase.RESYNCING)
        self.events.log_event(EventType.RESYNC_PROGRESS, "Component resynchronization: 0% complete.")
        self.scheduler.call_later(RESYNC_STEP_DELAY, self._resync_step, job.id)
        return job.id

    def _resync_step(self, job_id: int) -> None:
        job = get_job(self.db, job_id)
        if job is None:
            return

        progress = self.health.advance_resync(RESYNC_STEP_PERCENT)
        job.progress_percent = progress
        job.steps_completed += 1

        if progress % RESYNC_EVENT_EVERY_PERCENT == 0:
            self.events.log_event(
                EventType.RESYNC_PROGRESS,
                f"Component resynchronization: {progress}% complete.",
            )

        if progress < 100:
            self.scheduler.call_later(RESYNC_STEP_DELAY, self._resync_step, job_id)
            return

        complete_job(job)
        self.events.log_event(
            EventType.RESYNC_COMPLETE,
            "vSAN resynchronization complete. All objects comply with their policy "
            "(Compliant). State: HEALTHY.",
        )
        self.rebalancer.schedule_pass(reason="cluster healthy after resync")
