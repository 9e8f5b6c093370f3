"""
Health State Machine
Cluster-wide vSAN health driven by failure, maintenance and recovery events.

    Healthy/Warning --(host lost, partition, cache-group loss)--> Critical
    Healthy --(localized disk fault, maintenance entry)--> Warning
    any --(explicit recovery)--> Resyncing --(progress hits 100)--> Healthy

Critical and Warning never clear on their own; only a recovery resync moves
the cluster out of them. A Warning-level event does not downgrade Critical.
"""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from vsanlab.models import (
    ClusterHealth,
    Compliance,
    ComponentStatus,
    HealthState,
    VirtualMachine,
    VMComponent,
)

logger = logging.getLogger(__name__)

PROGRESS_COMPLETE = 100


class HealthStateMachine:

    def __init__(self, db: Session):
        self.db = db

    def get(self) -> ClusterHealth:
        health = self.db.get(ClusterHealth, 1)
        if health is None:
            raise RuntimeError("Cluster health not initialized")
        return health

    @property
    def state(self) -> HealthState:
        return self.get().state

    def is_resyncing(self) -> bool:
        return self.state == HealthState.RESYNCING

    def _transition(self, new_state: HealthState) -> None:
        health = self.get()
        if health.state != new_state:
            logger.info(f"Cluster health {health.state.value} -> {new_state.value}")
            health.state = new_state
            health.last_change = datetime.utcnow()

    def mark_critical(self) -> None:
        self._transition(HealthState.CRITICAL)

    def mark_warning(self) -> None:
        if self.state == HealthState.HEALTHY:
            self._transition(HealthState.WARNING)

    def begin_resync(self) -> None:
        """
        Enter Resyncing at 0%.

        Callers must check is_resyncing() first: overlapping resyncs are
        rejected by the orchestrator, never queued here.
        """
        if self.is_resyncing():
            raise RuntimeError("Resync already in progress")
        self._transition(HealthState.RESYNCING)
        self.get().resync_progress = 0

    def advance_resync(self, step_percent: int) -> int:
        """Advance reconstruction by one step. Completes the resync at 100%."""
        health = self.get()
        if health.state != HealthState.RESYNCING:
            raise RuntimeError("No resync in progress")
        health.resync_progress = min(PROGRESS_COMPLETE, health.resync_progress + step_percent)
        if health.resync_progress >= PROGRESS_COMPLETE:
            self._complete_resync()
        return health.resync_progress

    def _complete_resync(self) -> None:
        # Recovery is a full resync pass: compliance resets cluster-wide.
        for vm in self.db.scalars(select(VirtualMachine)).all():
            vm.compliance = Compliance.COMPLIANT
        for component in self.db.scalars(select(VMComponent)).all():
            component.status = ComponentStatus.ACTIVE
        self._transition(HealthState.HEALTHY)

    def reset(self) -> None:
        health = self.get()
        health.state = HealthState.HEALTHY
        health.resync_progress = 0
        health.last_change = datetime.utcnow()
