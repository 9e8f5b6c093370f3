"""
Lifecycle Manager
Rolling ESXi image remediation of a single host in maintenance mode.
One upgrade runs at a time; milestones are logged at 30/60/80%.
"""

import logging

from sqlalchemy.orm import Session

from vsanlab.config import TARGET_VERSION, UPGRADE_STEP_DELAY, UPGRADE_STEP_PERCENT
from vsanlab.models import EventType, HostStatus, WorkflowKind, WorkflowPhase
from vsanlab.results import CommandResult
from vsanlab.scheduler import Scheduler
from vsanlab.services.event_log import EventRecorder
from vsanlab.services.jobs import complete_job, get_job, start_job
from vsanlab.services.topology import TopologyModel, get_lab_session

logger = logging.getLogger(__name__)

UPGRADE_MILESTONES = {
    30: "remediating, installing image {version}...",
    60: "rebooting host...",
    80: "verifying driver compliance...",
}


class LifecycleManager:

    def __init__(self, db: Session, scheduler: Scheduler):
        self.db = db
        self.scheduler = scheduler
        self.topology = TopologyModel(db)
        self.events = EventRecorder(db)

    def upgrade_host(self, host_id: str) -> CommandResult:
        host = self.topology.get_host(host_id)
        lab = get_lab_session(self.db)

        if host.status != HostStatus.MAINTENANCE:
            return CommandResult.invalid(
                f"Error: Host {host.short_name} must be in maintenance mode before remediation."
            )
        if lab.upgrading_host_id is not None:
            busy = self.topology.get_host(lab.upgrading_host_id)
            return CommandResult.rejected(
                f"Host {busy.short_name} is already being upgraded. Only one upgrade at a time."
            )
        if host.version == TARGET_VERSION:
            return CommandResult.invalid(f"Host {host.short_name} already runs {TARGET_VERSION}.")

        lab.upgrading_host_id = host.id
        lab.upgrade_progress = 0
        job = start_job(self.db, WorkflowKind.UPGRADE, target_id=host.id, phase=WorkflowPhase.REMEDIATING)
        self.events.log_event(
            EventType.UPGRADE_START,
            f"vLCM: starting remediation of {host.name} to {TARGET_VERSION}...",
            host_id=host.id,
        )
        self.scheduler.call_later(UPGRADE_STEP_DELAY, self._upgrade_step, job.id)
        return CommandResult.success(f"Upgrade of {host.short_name} to {TARGET_VERSION} started")

    def _upgrade_step(self, job_id: int) -> None:
        job = get_job(self.db, job_id)
        if job is None:
            return
        lab = get_lab_session(self.db)
        host = self.topology.get_host(job.target_id)

        progress = min(100, job.progress_percent + UPGRADE_STEP_PERCENT)
        job.progress_percent = progress
        job.steps_completed += 1
        lab.upgrade_progress = progress

        milestone = UPGRADE_MILESTONES.get(progress)
        if milestone:
            self.events.log_event(
                EventType.UPGRADE_PROGRESS,
                f"{host.short_name}: " + milestone.format(version=TARGET_VERSION),
                host_id=host.id,
            )

        if progress < 100:
            self.scheduler.call_later(UPGRADE_STEP_DELAY, self._upgrade_step, job_id)
            return

        host.version = TARGET_VERSION
        lab.upgrading_host_id = None
        lab.upgrade_progress = 0
        complete_job(job)
        logger.info(f"Host {host.id} upgraded to {TARGET_VERSION}")
        self.events.log_event(
            EventType.UPGRADE_COMPLETE,
            f"Host {host.name} updated successfully to {TARGET_VERSION}.",
            host_id=host.id,
        )
