from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from vsanlab.models import WorkflowJob, WorkflowKind, WorkflowPhase, WorkflowState


def start_job(
    db: Session,
    kind: WorkflowKind,
    target_id: Optional[str] = None,
    mode: Optional[str] = None,
    phase: WorkflowPhase = WorkflowPhase.PENDING,
    state: WorkflowState = WorkflowState.IN_PROGRESS,
) -> WorkflowJob:
    job = WorkflowJob(
        kind=kind,
        state=state,
        phase=phase,
        target_id=target_id,
        mode=mode,
        progress_percent=0,
        steps_completed=0,
        started_at=datetime.utcnow(),
    )
    db.add(job)
    db.flush()
    return job


def complete_job(job: WorkflowJob) -> None:
    job.state = WorkflowState.COMPLETED
    job.phase = WorkflowPhase.DONE
    job.completed_at = datetime.utcnow()


def get_job(db: Session, job_id: int) -> Optional[WorkflowJob]:
    """None when the job vanished (lab reset while a step was pending)."""
    return db.get(WorkflowJob, job_id)


def active_job(db: Session, kind: WorkflowKind) -> Optional[WorkflowJob]:
    return db.scalars(
        select(WorkflowJob)
        .where(WorkflowJob.kind == kind, WorkflowJob.state != WorkflowState.COMPLETED)
        .order_by(WorkflowJob.id.desc())
    ).first()
