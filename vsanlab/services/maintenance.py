"""
Maintenance Workflow
Enter/exit maintenance mode with compute evacuation (vMotion) followed by
the data policy of the chosen mode:

    EnsureAccessibility -> components on the host go Absent (VMs NonCompliant)
    FullDataEvacuation  -> components move off the host, progress 0..100%

Only one data-host evacuation may run at a time.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from vsanlab.config import (
    EVACUATION_COMPUTE_DELAY,
    EVACUATION_STEP_DELAY,
    EVACUATION_STEP_PERCENT,
)
from vsanlab.models import (
    Compliance,
    ComponentKind,
    ComponentStatus,
    EventType,
    FailureKind,
    Host,
    HostStatus,
    LabPhase,
    MaintenanceMode,
    VirtualMachine,
    VMComponent,
    WorkflowKind,
    WorkflowPhase,
)
from vsanlab.results import CommandResult
from vsanlab.scheduler import Scheduler
from vsanlab.services.event_log import EventRecorder
from vsanlab.services.failure_orchestrator import FailureOrchestrator
from vsanlab.services.health_machine import HealthStateMachine
from vsanlab.services.jobs import complete_job, get_job, start_job
from vsanlab.services.placement_engine import redundancy_hosts
from vsanlab.services.topology import TopologyModel, get_lab_session

logger = logging.getLogger(__name__)


class MaintenanceWorkflow:

    def __init__(self, db: Session, scheduler: Scheduler, orchestrator: FailureOrchestrator):
        self.db = db
        self.scheduler = scheduler
        self.orchestrator = orchestrator
        self.topology = TopologyModel(db)
        self.health = HealthStateMachine(db)
        self.events = EventRecorder(db)

    def enter(self, host_id: str, mode: MaintenanceMode) -> CommandResult:
        """
        Put a host into maintenance mode.

        The witness appliance enters immediately. A data host first has its
        VMs migrated to the remaining connected data hosts, then runs the
        data policy of ``mode`` as a scheduled workflow.
        """
        mode = MaintenanceMode(mode)
        host = self.topology.get_host(host_id)
        lab = get_lab_session(self.db)

        if lab.phase != LabPhase.OPERATION:
            return CommandResult.invalid("The vSAN cluster is not operational yet.")
        if host.status != HostStatus.CONNECTED:
            return CommandResult.invalid(
                f"Host {host.short_name} must be Connected to enter maintenance mode "
                f"(current state: {host.status.value})."
            )
        if self.health.is_resyncing():
            return CommandResult.rejected("vSAN resync in progress. Wait for it to finish.")

        if host.is_witness:
            self.topology.set_host_status(host.id, HostStatus.MAINTENANCE)
            self.health.mark_warning()
            self.events.log_event(
                EventType.MAINTENANCE_ENTER,
                f"Witness appliance {host.name} entered maintenance mode. "
                f"Two-node objects run without a witness.",
                host_id=host.id,
            )
            return CommandResult.success(f"Witness {host.short_name} in maintenance mode")

        if lab.maintenance_host_id is not None:
            evacuating = self.topology.get_host(lab.maintenance_host_id)
            return CommandResult.rejected(
                f"Host {evacuating.short_name} is already being evacuated. Wait for it to finish."
            )
        targets = self.topology.surviving_data_hosts(exclude_id=host.id)
        if not targets:
            return CommandResult.invalid(
                f"No other connected data host can take the VMs of {host.short_name}."
            )
        if mode == MaintenanceMode.FULL_DATA_EVACUATION:
            _, stranded = self._relocation_plan(host)
            if stranded:
                return CommandResult.invalid(
                    f"Full data migration of {host.short_name} is not possible: "
                    f"{len(stranded)} component(s) have no other host to move to. "
                    f"Use {MaintenanceMode.ENSURE_ACCESSIBILITY.value} or add hosts."
                )

        lab.maintenance_host_id = host.id
        lab.maintenance_progress = 0
        job = start_job(
            self.db,
            WorkflowKind.EVACUATION,
            target_id=host.id,
            mode=mode.value,
            phase=WorkflowPhase.COMPUTE_EVACUATION,
        )
        self.events.log_event(
            EventType.MAINTENANCE_ENTER,
            f"Starting maintenance mode on {host.name} ({mode.value}).",
            host_id=host.id,
        )

        moved = 0
        for vm in self._vms_on(host.id):
            target = targets[moved % len(targets)]
            vm.host_id = target.id
            vm.compliance = Compliance.COMPLIANT
            moved += 1
            self.events.log_event(
                EventType.VMOTION,
                f"vMotion: VM {vm.name} migrated from {host.short_name} to {target.short_name}.",
                host_id=target.id,
                vm_id=vm.id,
            )

        self.scheduler.call_later(EVACUATION_COMPUTE_DELAY, self._evacuation_step, job.id)
        return CommandResult.success(
            f"Evacuating {host.short_name}: {moved} VM(s) migrated, {mode.value} in progress"
        )

    def _evacuation_step(self, job_id: int) -> None:
        job = get_job(self.db, job_id)
        if job is None:
            return
        host = self.topology.get_host(job.target_id)
        lab = get_lab_session(self.db)

        if job.phase == WorkflowPhase.COMPUTE_EVACUATION:
            if MaintenanceMode(job.mode) == MaintenanceMode.ENSURE_ACCESSIBILITY:
                degraded = self._mark_components_absent(host)
                self.events.log_event(
                    EventType.EVACUATION_PROGRESS,
                    f"Ensure accessibility: {degraded} VM(s) run with reduced redundancy "
                    f"while {host.short_name} is in maintenance.",
                    host_id=host.id,
                )
                self._finalize(job, host)
                return
            job.phase = WorkflowPhase.DATA_EVACUATION
            self.events.log_event(
                EventType.EVACUATION_PROGRESS,
                f"Full data migration: moving vSAN components off {host.short_name}...",
                host_id=host.id,
            )
            self.scheduler.call_later(EVACUATION_STEP_DELAY, self._evacuation_step, job_id)
            return

        progress = min(100, job.progress_percent + EVACUATION_STEP_PERCENT)
        job.progress_percent = progress
        job.steps_completed += 1
        lab.maintenance_progress = progress
        self.events.log_event(
            EventType.EVACUATION_PROGRESS,
            f"Data evacuation of {host.short_name}: {progress}% complete.",
            host_id=host.id,
        )
        if progress < 100:
            self.scheduler.call_later(EVACUATION_STEP_DELAY, self._evacuation_step, job_id)
            return

        relocated = self._relocate_components(host)
        self.events.log_event(
            EventType.EVACUATION_PROGRESS,
            f"Data evacuation complete: {relocated} component(s) moved off {host.short_name}.",
            host_id=host.id,
        )
        self._finalize(job, host)

    def _mark_components_absent(self, host: Host) -> int:
        degraded = 0
        for vm in self._all_vms():
            on_host = [c for c in vm.components if c.host_id == host.id]
            for component in on_host:
                component.status = ComponentStatus.ABSENT
            if on_host:
                vm.compliance = Compliance.NON_COMPLIANT
                degraded += 1
        return degraded

    def _relocation_plan(self, host: Host) -> Tuple[List[Tuple[VMComponent, Host]], List[VMComponent]]:
        """
        Work out where each component on ``host`` moves to.

        Replicas and witnesses go to the first connected data host (discovery
        order) holding no other replica/witness of the same VM; the VM home
        goes to the first connected data host. Returns (moves, stranded).
        """
        candidates = self.topology.surviving_data_hosts(exclude_id=host.id)
        moves = []
        stranded = []
        for vm in self._all_vms():
            used = set(redundancy_hosts(vm.components))
            for component in vm.components:
                if component.host_id != host.id:
                    continue
                if component.kind == ComponentKind.VM_HOME:
                    target = candidates[0] if candidates else None
                else:
                    target = self._first_free(candidates, used)
                if target is None:
                    stranded.append(component)
                    continue
                if component.kind != ComponentKind.VM_HOME:
                    used.add(target.id)
                moves.append((component, target))
        return moves, stranded

    def _relocate_components(self, host: Host) -> int:
        moves, stranded = self._relocation_plan(host)
        for component, target in moves:
            component.host_id = target.id
        # hosts left the cluster since entry was accepted
        for component in stranded:
            logger.warning(f"No free host for component {component.id}, marked absent")
            component.status = ComponentStatus.ABSENT
            component.vm.compliance = Compliance.NON_COMPLIANT
        return len(moves)

    @staticmethod
    def _first_free(candidates, used) -> Optional[Host]:
        for candidate in candidates:
            if candidate.id not in used:
                return candidate
        return None

    def _finalize(self, job, host: Host) -> None:
        lab = get_lab_session(self.db)
        self.topology.set_host_status(host.id, HostStatus.MAINTENANCE)
        lab.maintenance_host_id = None
        lab.maintenance_progress = 0
        complete_job(job)
        self.health.mark_warning()
        self.events.log_event(
            EventType.MAINTENANCE_ENTER,
            f"Host {host.name} is in maintenance mode.",
            host_id=host.id,
        )

    def exit(self, host_id: str) -> CommandResult:
        """Leave maintenance mode; returning the host triggers a recovery resync."""
        host = self.topology.get_host(host_id)
        lab = get_lab_session(self.db)
        if host.status != HostStatus.MAINTENANCE:
            return CommandResult.invalid(f"Host {host.short_name} is not in maintenance mode.")
        if lab.upgrading_host_id == host.id:
            return CommandResult.rejected(
                f"Host {host.short_name} is being upgraded. Wait for the update to finish."
            )
        reason = self.orchestrator.workflow_blocker()
        if reason:
            return CommandResult.rejected(reason)

        self.events.log_event(
            EventType.MAINTENANCE_EXIT,
            f"Exiting maintenance mode on {host.name}.",
            host_id=host.id,
        )
        return self.orchestrator.recover(host.id, FailureKind.HOST)

    def _vms_on(self, host_id: str):
        return list(
            self.db.scalars(
                select(VirtualMachine)
                .where(VirtualMachine.host_id == host_id)
                .order_by(VirtualMachine.ordinal)
            ).all()
        )

    def _all_vms(self):
        return list(self.db.scalars(select(VirtualMachine).order_by(VirtualMachine.ordinal)).all())
