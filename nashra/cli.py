"""Command line entry points: schema, seed data, one-off runs and the worker."""
import argparse
import getpass
import json
import logging
import signal
import sys
import threading

from nashra.container import build_pipeline
from nashra.core.config import settings
from nashra.core.logging import configure_logging
from nashra.core.scheduler import RefreshScheduler
from nashra.db.seed import seed_demo_data, upsert_user
from nashra.db.session import build_engine, init_db, session_scope, build_session_factory

logger = logging.getLogger(__name__)


def cmd_init_db(args) -> int:
    engine = build_engine(settings)
    init_db(engine)
    engine.dispose()
    return 0


def cmd_create_admin(args) -> int:
    password = args.password or getpass.getpass("Admin password: ")
    engine = build_engine(settings)
    init_db(engine)
    with session_scope(build_session_factory(engine)) as db:
        user = upsert_user(db, args.email, password, args.name, "admin", tier="pro")
        logger.info("Admin user %s created/updated (id=%s)", user.email, user.id)
    engine.dispose()
    return 0


def cmd_seed(args) -> int:
    engine = build_engine(settings)
    init_db(engine)
    with session_scope(build_session_factory(engine)) as db:
        seed_demo_data(db)
    engine.dispose()
    return 0


def cmd_refresh(args) -> int:
    pipeline = build_pipeline(settings)
    try:
        result = pipeline.runner.run(trigger="cli")
    finally:
        pipeline.close()
    print(json.dumps(result.as_dict(), indent=2))
    return 0 if result.success else 1


def cmd_check_alerts(args) -> int:
    pipeline = build_pipeline(settings)
    try:
        result = pipeline.alert_evaluator.evaluate(args.alert_type)
    finally:
        pipeline.close()
    print(json.dumps({"evaluated": result.evaluated, "triggered": result.triggered,
                      "errors": result.errors}, indent=2))
    return 0 if not result.errors else 1


def cmd_worker(args) -> int:
    """Run the schedule in the foreground until SIGINT/SIGTERM."""
    pipeline = build_pipeline(settings)
    scheduler = RefreshScheduler(
        pipeline.runner,
        pipeline.alert_evaluator,
        refresh_minutes=settings.REFRESH_INTERVAL_MINUTES,
        alert_minutes=settings.ALERT_INTERVAL_MINUTES,
        news_minutes=settings.NEWS_INTERVAL_MINUTES,
    )
    stop = threading.Event()

    def _stop(signum, frame):
        logger.info("Shutting down worker...")
        stop.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)

    logger.info("Starting NashraIQ worker...")
    scheduler.start()
    try:
        stop.wait()
    finally:
        scheduler.shutdown(wait=True)
        pipeline.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="nashra", description="NashraIQ data pipeline")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create database tables").set_defaults(func=cmd_init_db)

    admin = sub.add_parser("create-admin", help="Create or reset an admin user")
    admin.add_argument("--email", default="admin@nashra-iq.com")
    admin.add_argument("--name", default="Administrator")
    admin.add_argument("--password", help="Prompted for when omitted")
    admin.set_defaults(func=cmd_create_admin)

    sub.add_parser("seed", help="Insert demo companies and events").set_defaults(func=cmd_seed)
    sub.add_parser("refresh", help="Run one refresh cycle").set_defaults(func=cmd_refresh)

    alerts = sub.add_parser("check-alerts", help="Evaluate active alerts once")
    alerts.add_argument("--alert-type", default="price")
    alerts.set_defaults(func=cmd_check_alerts)

    sub.add_parser("worker", help="Run scheduled refresh and alert jobs").set_defaults(func=cmd_worker)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(settings.LOG_LEVEL)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
