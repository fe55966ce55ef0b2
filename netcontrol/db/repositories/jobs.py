import json
from sqlalchemy.orm import Session
from netcontrol.db.models import BackgroundTask
from typing import Any, Dict, List, Optional, Sequence

class JobRepository:
    """Repository for background job records."""

    def __init__(self, db: Session):
        self.db = db

    def enqueue(
        self,
        kind: str,
        operation: str,
        items: Sequence[Dict[str, Any]] = None,
        ids: Sequence[str] = None,
        name: str = None,
        user_ids: Sequence[str] = None,
    ) -> BackgroundTask:
        """
        Persist a job asking the engine to mutate entities of one kind.

        Args:
            kind: Entity kind (e.g. "Node")
            operation: "create", "edit" or "delete"
            items: Payloads to create or edit
            ids: IDs of the entities to delete
            name: Job name (derived from kind and operation if omitted)
            user_ids: IDs of the users paired with ``ids`` (DatabaseUser deletes only)

        Returns:
            Created job record
        """
        data = json.dumps({"items": list(items or []), "ids": list(ids or []), "user_ids": list(user_ids or [])})
        job = BackgroundTask(
            name=name or f"{operation.capitalize()}{kind}BackgroundJob",
            kind=kind,
            operation=operation,
            data=data,
        )
        self.db.add(job)
        self.db.commit()
        self.db.refresh(job)
        return job

    def get_job(self, job_id: str) -> Optional[BackgroundTask]:
        """
        Get a job by ID.

        Args:
            job_id: Job ID

        Returns:
            Job if found, None otherwise
        """
        return self.db.query(BackgroundTask).filter(BackgroundTask.id == job_id).first()

    def get_pending_jobs(self) -> List[BackgroundTask]:
        """
        Get all jobs still waiting to run, oldest first.

        Returns:
            List of job records
        """
        return self.db.query(BackgroundTask).order_by(BackgroundTask.created_at, BackgroundTask.id).all()

    def delete_job(self, job_id: str) -> bool:
        """
        Delete a job by ID.

        Args:
            job_id: Job ID

        Returns:
            True if the job was deleted, False otherwise
        """
        job = self.get_job(job_id)
        if not job:
            return False

        self.db.delete(job)
        self.db.commit()
        return True
