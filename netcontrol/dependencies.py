from __future__ import annotations

from sqlalchemy.orm import sessionmaker

from netcontrol.config import settings
from netcontrol.db.database import get_session_factory
from netcontrol.engine.batch_mutator import BatchMutator
from netcontrol.engine.cascade import CascadeOrchestrator
from netcontrol.engine.dependency_resolver import DependencyResolver
from netcontrol.application.mutation_service import MutationService
from netcontrol.application.job_runner import JobRunner


def get_mutation_service(session_factory: sessionmaker = None) -> MutationService:
    session_factory = session_factory or get_session_factory()
    mutator = BatchMutator(batch_size=settings.BATCH_SIZE)
    resolver = DependencyResolver(session_factory, page_size=settings.PAGE_SIZE)
    return MutationService(
        session_factory,
        mutator=mutator,
        resolver=resolver,
        orchestrator=CascadeOrchestrator(session_factory, resolver, mutator),
    )


def get_job_runner(session_factory: sessionmaker = None) -> JobRunner:
    session_factory = session_factory or get_session_factory()
    return JobRunner(session_factory, service=get_mutation_service(session_factory))
