"""Operator commands: schema setup, scheduled savings deposits and KYC review.

    python -m finsphere.jobs init-db
    python -m finsphere.jobs auto-deposits [--at 2026-01-01T00:00:00]
    python -m finsphere.jobs review-kyc USER_ID SLOT --approve | --reject --reason TEXT
"""

import argparse
import logging
import sys
from datetime import datetime
from typing import List, Optional

from config import get_app_config
from . import directory, models, savings
from .errors import FinSphereError
from .logging_config import configure_logging, new_correlation_id

logger = logging.getLogger(__name__)


def init_db(database: models.Database) -> int:
    database.create_all()
    logger.info("Database schema created")
    return 0


def auto_deposits(database: models.Database, at: Optional[datetime] = None) -> int:
    session = database.get_session()
    try:
        applied = savings.run_due_auto_deposits(session, at)
        for goal in applied:
            print(f"goal {goal.goal_id:<8} balance {goal.current_amount:<12} next {goal.auto_deposit_next}")
        print(f"{len(applied)} scheduled deposits applied")
    finally:
        session.close()
    return 0


def review_kyc(database: models.Database, user_id: int, slot: str, approved: bool,
               reason: Optional[str] = None) -> int:
    session = database.get_session()
    try:
        record = directory.review_kyc_document(session, user_id, slot, approved, reason)
        print(f"user {user_id} {slot}: {'approved' if approved else 'rejected'}; overall status {record.status}")
    finally:
        session.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='FinSphere operator commands')
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default=None,
        help='Logging level (defaults to LOG_LEVEL)'
    )
    commands = parser.add_subparsers(dest='command', required=True)

    commands.add_parser('init-db', help='Create all tables')

    deposits = commands.add_parser('auto-deposits', help='Apply due automatic savings deposits')
    deposits.add_argument(
        '--at',
        type=datetime.fromisoformat,
        default=None,
        help='Treat this ISO timestamp as "now" (default: current UTC time)'
    )

    kyc = commands.add_parser('review-kyc', help='Approve or reject one KYC document')
    kyc.add_argument('user_id', type=int)
    kyc.add_argument('slot', choices=list(directory.KYC_SLOTS))
    decision = kyc.add_mutually_exclusive_group(required=True)
    decision.add_argument('--approve', action='store_true')
    decision.add_argument('--reject', action='store_true')
    kyc.add_argument('--reason', default=None, help='Shown to the user when rejecting')
    return parser


def main(argv: Optional[List[str]] = None, database: Optional[models.Database] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == 'review-kyc' and args.reject and not args.reason:
        parser.error("--reason is required when rejecting a document")

    app_config = get_app_config()
    configure_logging(args.log_level or app_config.log_level, app_config.log_dir)
    new_correlation_id(f"job-{args.command}")
    database = database or models.Database()

    try:
        if args.command == 'init-db':
            return init_db(database)
        if args.command == 'auto-deposits':
            return auto_deposits(database, args.at)
        return review_kyc(database, args.user_id, args.slot, args.approve, args.reason)
    except FinSphereError as e:
        logger.error(f"{args.command} failed: {e.message}")
        print(f"error: {e.message}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
