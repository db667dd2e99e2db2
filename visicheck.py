#!/usr/bin/env python3
"""Visicheck - brand visibility tracking across AI answer engines.

Entry point for the API server, the background worker pool and the
scheduler pass run by cron.
"""

import argparse
import sys

import structlog

from core.config import get_config
from core.logging_setup import setup_logging
from database.connection import init_db

logger = structlog.get_logger(__name__)


def serve(config, db_connection, args):
    import uvicorn

    from api.app import create_app

    logger.info("api_server_starting", host=config.host, port=config.port)
    uvicorn.run(create_app(), host=config.host, port=config.port, log_config=None)


def work(config, db_connection, args):
    from worker.worker_pool import WorkerPool

    pool = WorkerPool(
        size=config.worker_pool_size,
        db_connection=db_connection,
        config=config,
    )
    pool.run_forever()


def schedule(config, db_connection, args):
    from tracking.scheduler import run_scheduled

    with db_connection.session() as session:
        counts = run_scheduled(session)
    logger.info("schedule_pass_completed", **counts)


def create_tables(config, db_connection, args):
    if args.drop:
        db_connection.drop_tables()
    db_connection.create_tables()
    logger.info("database_tables_ready")


COMMANDS = {
    "serve": serve,
    "worker": work,
    "schedule": schedule,
    "init-db": create_tables,
}


def main(argv=None):
    """Main entry point for Visicheck."""
    parser = argparse.ArgumentParser(prog="visicheck", description=__doc__.splitlines()[0])
    parser.add_argument("command", choices=sorted(COMMANDS), help="What to run")
    parser.add_argument(
        "--drop", action="store_true", help="init-db: drop all tables before creating them"
    )
    args = parser.parse_args(argv)

    config = get_config()
    setup_logging(config.log_level, json_output=config.is_production)

    logger.info("visicheck_starting", command=args.command, version="1.0.0")
    config.log_configuration()

    if not config.validate():
        logger.error("configuration_invalid")
        sys.exit(1)

    db_connection = init_db(
        config.database_url,
        pool_size=max(config.database_pool_size, config.worker_pool_size * 2),
    )
    if args.command != "init-db" and not db_connection.health_check():
        logger.error("database_health_check_failed")
        sys.exit(1)

    try:
        COMMANDS[args.command](config, db_connection, args)
    except Exception as e:
        logger.error("visicheck_failed", command=args.command, error=str(e), exc_info=True)
        sys.exit(1)
    finally:
        db_connection.close()


if __name__ == "__main__":
    main()
