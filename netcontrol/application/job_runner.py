"""Runs persisted background jobs through the mutation service."""
from __future__ import annotations

import logging
from typing import List

from pydantic import TypeAdapter, ValidationError as PayloadValidationError
from sqlalchemy.orm import sessionmaker

from netcontrol.application.mutation_service import MutationService
from netcontrol.db.database import session_scope
from netcontrol.db.repositories.jobs import JobRepository
from netcontrol.domain.entities import MutationReport
from netcontrol.domain.enumerations import EntityKind, MutationOperation
from netcontrol.domain.errors import JobNotFoundError, JobPayloadError
from netcontrol.domain.events import JobCompleted, event_publisher
from netcontrol.engine.cancellation import CancellationToken, ensure_token
from netcontrol.schemas.payloads import JobData, PAYLOADS_BY_KIND

logger = logging.getLogger(__name__)


class JobRunner:
    """
    Execute one job record end to end.

    The record is removed only once the mutation returned without raising,
    so a failed job can be inspected and run again.
    """

    def __init__(self, session_factory: sessionmaker, service: MutationService = None) -> None:
        self._session_factory = session_factory
        self._service = service or MutationService(session_factory)

    def run(self, job_id: str, token: CancellationToken = None) -> MutationReport:
        """
        Run the job with the given id.

        Raises:
            JobNotFoundError: If no job record has this id
            JobPayloadError: If the record's data cannot be turned into mutation items
        """
        token = ensure_token(token)
        with session_scope(self._session_factory) as session:
            job = JobRepository(session).get_job(job_id)
            if job is None:
                raise JobNotFoundError(f"Job {job_id} not found")
            name, kind, operation, data = job.name, job.kind, job.operation, job.data

        try:
            kind = EntityKind(kind)
            operation = MutationOperation(operation)
            job_data = JobData.model_validate_json(data)
            items = None
            if operation != MutationOperation.DELETE:
                if kind not in PAYLOADS_BY_KIND:
                    raise ValueError(f"Entities of kind {kind.value} cannot be {operation.value}d")
                items = TypeAdapter(List[PAYLOADS_BY_KIND[kind]]).validate_python(job_data.items)
        except (ValueError, PayloadValidationError) as e:
            raise JobPayloadError(f"Job {job_id} ({name}) has unusable data: {e}") from e

        logger.info(f"Running job {job_id} ({name}): {operation.value} {kind.value}")
        if operation == MutationOperation.CREATE:
            report = self._service.create(kind, items, token)
        elif operation == MutationOperation.EDIT:
            report = self._service.edit(kind, items, token)
        elif kind == EntityKind.DATABASE_USER:
            report = self._service.delete_database_users(job_data.ids, job_data.user_ids, token)
        else:
            report = self._service.delete(kind, job_data.ids, token)

        with session_scope(self._session_factory) as session:
            JobRepository(session).delete_job(job_id)
        logger.info(f"Job {job_id} ({name}) finished{' after cancellation' if report.cancelled else ''}")
        event_publisher.publish(JobCompleted(
            event_id="",
            timestamp=None,
            aggregate_id=job_id,
            kind=kind.value,
            operation=operation.value,
            cancelled=report.cancelled,
        ))
        return report

    def run_pending(self, token: CancellationToken = None) -> List[MutationReport]:
        """
        Run every waiting job, oldest first, until none is left or the token is cancelled.

        A job that raises stops the run; the jobs after it stay queued.
        """
        token = ensure_token(token)
        with session_scope(self._session_factory) as session:
            job_ids = [job.id for job in JobRepository(session).get_pending_jobs()]
        logger.info(f"Found {len(job_ids)} pending jobs")
        reports = []
        for job_id in job_ids:
            if token.is_cancelled:
                logger.info(f"Stopped with {len(job_ids) - len(reports)} jobs still pending")
                break
            reports.append(self.run(job_id, token))
        return reports
