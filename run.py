import argparse
import logging
import signal

from netcontrol.config import settings
from netcontrol.db.database import create_db_engine, get_session_factory
from netcontrol.db.init_db import init_database, reset_database
from netcontrol.dependencies import get_job_runner
from netcontrol.application.event_handlers import register_event_handlers
from netcontrol.engine.cancellation import CancellationToken

logger = logging.getLogger("netcontrol.run")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Run a background mutation job by its ID.")
    parser.add_argument("job_id", nargs="?", help="ID of the background job to run")
    parser.add_argument("--pending", action="store_true", help="Run every queued job, oldest first")
    parser.add_argument("--init-db", action="store_true", help="Create the database and tables first")
    parser.add_argument("--reset-db", action="store_true", help="Drop and recreate all tables (DELETES ALL DATA)")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL, help="Logging level (default: %(default)s)")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.init_db:
        init_database()
    if args.reset_db:
        reset_database(create_db_engine())
    if not (args.job_id or args.pending):
        if not (args.init_db or args.reset_db):
            parser.error("a job ID or --pending is required unless --init-db or --reset-db is given")
        return 0

    register_event_handlers()
    token = CancellationToken()
    # Ctrl+C stops the job after the chunk being committed
    signal.signal(signal.SIGINT, lambda signum, frame: token.cancel())
    signal.signal(signal.SIGTERM, lambda signum, frame: token.cancel())

    runner = get_job_runner(get_session_factory())
    reports = runner.run_pending(token) if args.pending else [runner.run(args.job_id, token)]
    for report in reports:
        logger.info(
            f"{report.operation} {report.kind}: {report.accepted} accepted, "
            f"{len(report.rejections)} rejected, deleted {report.deleted or 'nothing'}"
        )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
