"""
Rebalancer (DRS)
Evens out VM counts across eligible hosts one vMotion at a time until the
busiest and the idlest host differ by at most one VM.
"""

import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from vsanlab.config import MIGRATION_SETTLE_DELAY, REBALANCE_DELAY
from vsanlab.models import (
    DiskRole,
    EventType,
    HealthState,
    Host,
    HostStatus,
    VirtualMachine,
    WorkflowKind,
    WorkflowPhase,
    WorkflowState,
)
from vsanlab.scheduler import Scheduler
from vsanlab.services.event_log import EventRecorder
from vsanlab.services.health_machine import HealthStateMachine
from vsanlab.services.jobs import active_job, complete_job, get_job, start_job
from vsanlab.services.topology import TopologyModel, get_lab_session

logger = logging.getLogger(__name__)

# Job mode: pass only starts if the cluster is still Healthy when due
MODE_REQUIRE_HEALTHY = "require_healthy"
MODE_ANY_HEALTH = "any_health"


class Rebalancer:

    def __init__(self, db: Session, scheduler: Scheduler):
        self.db = db
        self.scheduler = scheduler
        self.topology = TopologyModel(db)
        self.health = HealthStateMachine(db)
        self.events = EventRecorder(db)

    def eligible_hosts(self) -> List[Host]:
        """Hosts able to receive VMs: connected data hosts with vSAN storage."""
        lab = get_lab_session(self.db)
        return [
            h
            for h in self.topology.list_hosts()
            if h.status == HostStatus.CONNECTED
            and h.vsan_traffic_enabled
            and not h.is_witness
            and h.id != lab.maintenance_host_id
            and any(d.claimed_as != DiskRole.UNCLAIMED for d in h.disks)
        ]

    def vm_counts(self, hosts: List[Host]) -> Dict[str, int]:
        counts = {h.id: 0 for h in hosts}
        for vm in self.db.scalars(select(VirtualMachine)).all():
            if vm.host_id in counts:
                counts[vm.host_id] += 1
        return counts

    def schedule_pass(self, reason: str, require_healthy: bool = True) -> bool:
        """
        Arm a rebalance pass REBALANCE_DELAY from now.

        Returns False when a pass is already scheduled or running; the
        trigger is then coalesced into it.
        """
        if active_job(self.db, WorkflowKind.REBALANCE) is not None:
            logger.debug(f"Rebalance already pending, coalescing trigger: {reason}")
            return False
        job = start_job(
            self.db,
            WorkflowKind.REBALANCE,
            mode=MODE_REQUIRE_HEALTHY if require_healthy else MODE_ANY_HEALTH,
            state=WorkflowState.SCHEDULED,
        )
        logger.info(f"Rebalance pass scheduled in {REBALANCE_DELAY}s ({reason})")
        self.scheduler.call_later(REBALANCE_DELAY, self._step, job.id)
        return True

    def _pick_move(self, counts: Dict[str, int], hosts: List[Host]) -> Optional[Tuple[str, str]]:
        # Ties resolve to the first host in discovery order.
        source = max(hosts, key=lambda h: counts[h.id]).id
        target = min(hosts, key=lambda h: counts[h.id]).id
        if counts[source] - counts[target] <= 1:
            return None
        return source, target

    def _step(self, job_id: int) -> None:
        job = get_job(self.db, job_id)
        if job is None:
            return

        if job.state == WorkflowState.SCHEDULED:
            if job.mode == MODE_REQUIRE_HEALTHY and self.health.state != HealthState.HEALTHY:
                logger.info("Rebalance skipped: cluster no longer healthy")
                complete_job(job)
                return
            job.state = WorkflowState.IN_PROGRESS
            job.phase = WorkflowPhase.MIGRATING

        hosts = self.eligible_hosts()
        if len(hosts) < 2:
            complete_job(job)
            return

        counts = self.vm_counts(hosts)
        move = self._pick_move(counts, hosts)
        if move is None:
            if job.steps_completed > 0:
                self.events.log_event(
                    EventType.REBALANCE_COMPLETE,
                    f"DRS: cluster balanced after {job.steps_completed} migration(s).",
                )
            complete_job(job)
            return

        source_id, target_id = move
        if job.steps_completed == 0:
            self.events.log_event(
                EventType.REBALANCE_START,
                "DRS: load imbalance detected. Starting automatic rebalancing...",
            )

        vm = self.db.scalars(
            select(VirtualMachine)
            .where(VirtualMachine.host_id == source_id)
            .order_by(VirtualMachine.ordinal.desc())
        ).first()
        source = self.topology.get_host(source_id)
        target = self.topology.get_host(target_id)
        vm.host_id = target_id
        job.steps_completed += 1
        self.events.log_event(
            EventType.VMOTION,
            f"DRS vMotion: VM {vm.name} migrated from {source.short_name} to {target.short_name}.",
            host_id=target_id,
            vm_id=vm.id,
        )
        self.scheduler.call_later(MIGRATION_SETTLE_DELAY, self._step, job_id)
