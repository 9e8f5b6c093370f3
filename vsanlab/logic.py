"""
Control Plane Integration Layer
Single owner of the lab state. Wires the service classes to one session,
serializes commands and scheduled workflow steps behind one lock and turns
entities into plain dict snapshots for the API layer.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy import select

from vsanlab.config import DATABASE_URL
from vsanlab.database import build_engine, build_session_factory, init_db
from vsanlab.models import (
    ClusterHealth,
    DiskRole,
    EventLog,
    FailureKind,
    HealthState,
    Host,
    LabPhase,
    LabScenario,
    LabSession,
    MaintenanceMode,
    StoragePolicyName,
    VirtualMachine,
    VsanArchitecture,
    WorkflowJob,
    get_policy,
)
from vsanlab.results import CommandResult
from vsanlab.scheduler import ManualScheduler, Scheduler
from vsanlab.services.capacity_ledger import capacity_summary
from vsanlab.services.cluster_setup import ClusterSetupService
from vsanlab.services.event_log import EventRecorder
from vsanlab.services.failure_orchestrator import FailureOrchestrator
from vsanlab.services.health_machine import HealthStateMachine
from vsanlab.services.lifecycle import LifecycleManager
from vsanlab.services.maintenance import MaintenanceWorkflow
from vsanlab.services.rebalancer import Rebalancer
from vsanlab.services.topology import TopologyModel, get_lab_session
from vsanlab.services.vm_deployer import VMDeployer

logger = logging.getLogger(__name__)


# ============================================================================
# SNAPSHOT SERIALIZERS
# ============================================================================

def serialize_host(host: Host, lab: LabSession) -> Dict[str, Any]:
    return {
        "id": host.id,
        "name": host.name,
        "ip_address": host.ip_address,
        "version": host.version,
        "is_witness": host.is_witness,
        "status": host.status.value,
        "network_status": host.isolation.value,
        "vsan_traffic_enabled": host.vsan_traffic_enabled,
        "evacuating": lab.maintenance_host_id == host.id,
        "upgrading": lab.upgrading_host_id == host.id,
        "disks": [
            {
                "id": d.id,
                "type": d.media.value,
                "tier": d.tier.value,
                "capacity_gb": d.capacity_gb,
                "size": d.size_label,
                "claimed_as": d.claimed_as.value,
                "health": d.health.value,
            }
            for d in host.disks
        ],
    }


def serialize_vm(vm: VirtualMachine) -> Dict[str, Any]:
    return {
        "id": vm.id,
        "name": vm.name,
        "host_id": vm.host_id,
        "state": vm.power.value,
        "compliance": vm.compliance.value,
        "policy": vm.policy.value,
        "size_gb": vm.size_gb,
        "used_space_gb": vm.used_space_gb,
        "components": [
            {"id": c.id, "type": c.kind.value, "host_id": c.host_id, "status": c.status.value}
            for c in vm.components
        ],
    }


def serialize_event(event: EventLog) -> Dict[str, Any]:
    return {
        "id": event.id,
        "type": event.event_type.value,
        "severity": event.severity.value,
        "message": event.message,
        "host_id": event.host_id,
        "vm_id": event.vm_id,
        "disk_id": event.disk_id,
        "timestamp": event.timestamp.isoformat(),
        "line": event.render(),
    }


def serialize_job(job: WorkflowJob) -> Dict[str, Any]:
    return {
        "id": job.id,
        "kind": job.kind.value,
        "state": job.state.value,
        "phase": job.phase.value,
        "target_id": job.target_id,
        "mode": job.mode,
        "progress_percent": job.progress_percent,
        "steps_completed": job.steps_completed,
        "started_at": job.started_at.isoformat() if job.started_at else None,
        "completed_at": job.completed_at.isoformat() if job.completed_at else None,
    }


# ============================================================================
# CONTROL PLANE
# ============================================================================

class ControlPlane:
    """
    The lab's single state owner.

    Commands return a CommandResult; non-ok results are also recorded as
    ERROR events. Unknown ids raise UnknownEntityError and leave state
    untouched.
    """

    def __init__(self, scheduler: Optional[Scheduler] = None, database_url: str = DATABASE_URL):
        self.engine = build_engine(database_url)
        init_db(self.engine)
        self.db = build_session_factory(self.engine)()
        self.scheduler = scheduler if scheduler is not None else ManualScheduler()
        self._lock = threading.RLock()
        self.scheduler.bind_runner(self._run_scheduled)

        self.topology = TopologyModel(self.db)
        self.health = HealthStateMachine(self.db)
        self.events = EventRecorder(self.db)
        self.rebalancer = Rebalancer(self.db, self.scheduler)
        self.failures = FailureOrchestrator(self.db, self.scheduler, self.rebalancer)
        self.maintenance = MaintenanceWorkflow(self.db, self.scheduler, self.failures)
        self.lifecycle = LifecycleManager(self.db, self.scheduler)
        self.setup = ClusterSetupService(self.db, self.scheduler, self.rebalancer)
        self.vms = VMDeployer(self.db, self.rebalancer)

        self._bootstrap()

    def _bootstrap(self) -> None:
        with self._lock:
            if self.db.get(LabSession, 1) is None:
                self.db.add(
                    LabSession(
                        id=1,
                        scenario=LabScenario.STANDARD,
                        architecture=VsanArchitecture.OSA,
                        phase=LabPhase.INTRO,
                        cluster_created=False,
                        selected_policy=StoragePolicyName.RAID1_FTT1,
                        maintenance_progress=0,
                        upgrade_progress=0,
                    )
                )
            if self.db.get(ClusterHealth, 1) is None:
                self.db.add(ClusterHealth(id=1, state=HealthState.HEALTHY, resync_progress=0))
            self.db.flush()
            if not self.topology.list_hosts():
                self.topology.replace_inventory(LabScenario.STANDARD, VsanArchitecture.OSA)
            self.db.commit()
            logger.info("Control plane initialized")

    def close(self) -> None:
        self.scheduler.clear()
        self.db.close()
        self.engine.dispose()

    # ------------------------------------------------------------ execution

    def _run_scheduled(self, fn: Callable[..., Any], args: tuple) -> None:
        with self._lock:
            try:
                fn(*args)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

    def _command(self, fn: Callable[..., CommandResult], *args) -> CommandResult:
        with self._lock:
            try:
                result = fn(*args)
                if not result.ok:
                    self.events.error(result.message)
                self.db.commit()
                return result
            except Exception:
                self.db.rollback()
                raise

    # ------------------------------------------------------------- commands

    def select_scenario(self, scenario: LabScenario) -> CommandResult:
        return self._command(self.setup.select_scenario, scenario)

    def set_architecture(self, architecture: VsanArchitecture) -> CommandResult:
        return self._command(self.setup.set_architecture, architecture)

    def create_cluster(self) -> CommandResult:
        return self._command(self.setup.create_cluster)

    def add_hosts(self, host_ids: Sequence[str]) -> CommandResult:
        return self._command(self.setup.add_hosts, list(host_ids))

    def toggle_vsan_traffic(self, host_id: str) -> CommandResult:
        return self._command(self.setup.toggle_vsan_traffic, host_id)

    def claim_disk(self, host_id: str, disk_id: str, role: DiskRole) -> CommandResult:
        return self._command(self.setup.claim_disk, host_id, disk_id, role)

    def validate_network(self) -> CommandResult:
        return self._command(self.setup.validate_network)

    def validate_disks(self) -> CommandResult:
        return self._command(self.setup.validate_disks)

    def deploy_vsan(self) -> CommandResult:
        return self._command(self.setup.deploy_vsan)

    def add_expansion_host(self, host_id: str) -> CommandResult:
        return self._command(self.setup.add_expansion_host, host_id)

    def leave_cluster(self, host_id: str) -> CommandResult:
        return self._command(self.setup.leave_cluster, host_id)

    def reset_lab(self) -> CommandResult:
        return self._command(self.setup.reset_lab)

    def deploy_test_vms(self, policy: StoragePolicyName) -> CommandResult:
        return self._command(self.vms.deploy_test_vms, policy)

    def inject_failure(self, kind: FailureKind, target_id: str) -> CommandResult:
        return self._command(self.failures.inject_failure, kind, target_id)

    def recover(self, entity_id: str, kind: FailureKind) -> CommandResult:
        return self._command(self.failures.recover, entity_id, kind)

    def enter_maintenance(self, host_id: str, mode: MaintenanceMode) -> CommandResult:
        return self._command(self.maintenance.enter, host_id, mode)

    def exit_maintenance(self, host_id: str) -> CommandResult:
        return self._command(self.maintenance.exit, host_id)

    def upgrade_host(self, host_id: str) -> CommandResult:
        return self._command(self.lifecycle.upgrade_host, host_id)

    # -------------------------------------------------------------- queries

    def session_snapshot(self) -> Dict[str, Any]:
        with self._lock:
            lab = get_lab_session(self.db)
            policy = get_policy(lab.selected_policy)
            return {
                "scenario": lab.scenario.value,
                "architecture": lab.architecture.value,
                "phase": lab.phase.value,
                "cluster_created": lab.cluster_created,
                "selected_policy": policy.name.value,
                "ftt": policy.ftt,
                "maintenance_host_id": lab.maintenance_host_id,
                "maintenance_progress": lab.maintenance_progress,
                "upgrading_host_id": lab.upgrading_host_id,
                "upgrade_progress": lab.upgrade_progress,
            }

    def list_hosts(self) -> List[Dict[str, Any]]:
        with self._lock:
            lab = get_lab_session(self.db)
            return [serialize_host(h, lab) for h in self.topology.list_hosts()]

    def get_host(self, host_id: str) -> Dict[str, Any]:
        with self._lock:
            return serialize_host(self.topology.get_host(host_id), get_lab_session(self.db))

    def list_vms(self) -> List[Dict[str, Any]]:
        with self._lock:
            vms = self.db.scalars(select(VirtualMachine).order_by(VirtualMachine.ordinal)).all()
            return [serialize_vm(vm) for vm in vms]

    def health_snapshot(self) -> Dict[str, Any]:
        with self._lock:
            health = self.health.get()
            return {
                "state": health.state.value,
                "resync_progress": health.resync_progress,
                "active_failures": self.failures.active_failures(),
                "last_change": health.last_change.isoformat() if health.last_change else None,
            }

    def capacity(self) -> Dict[str, Any]:
        with self._lock:
            vms = self.db.scalars(select(VirtualMachine)).all()
            return capacity_summary(self.topology.list_hosts(), vms)

    def recent_events(self, limit: int = 100) -> List[Dict[str, Any]]:
        with self._lock:
            return [serialize_event(e) for e in self.events.recent(limit)]

    def list_jobs(self) -> List[Dict[str, Any]]:
        with self._lock:
            jobs = self.db.scalars(select(WorkflowJob).order_by(WorkflowJob.id.desc())).all()
            return [serialize_job(j) for j in jobs]
