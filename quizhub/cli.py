"""
Operational commands.

    quizhub-admin init-db
    quizhub-admin reconcile-enrollments --dry-run
    quizhub-admin cleanup-stuck-attempts
    quizhub-admin seed-templates
    quizhub-admin promote-educator someone@example.com
    quizhub-admin purge-sessions
    quizhub-admin hash-password 's3cret'
"""

import argparse
import json
import logging
import sys

from quizhub.core.config import settings
from quizhub.core.security import hash_password
from quizhub.db.database import get_session_local, init_db
from quizhub.services import admin_service, maintenance, permission_templates, session_manager
from quizhub.services.errors import QuizHubError

logger = logging.getLogger("quizhub.cli")


def _print(payload):
    print(json.dumps(payload, indent=2, default=str))


def _run(job, dry_run: bool = False):
    """Run ``job(db)`` in one session; commit unless it is a dry run."""
    db = get_session_local()()
    try:
        result = job(db)
        if dry_run:
            db.rollback()
        else:
            db.commit()
        return result
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def cmd_init_db(args):
    init_db()
    print("Tables created")


def cmd_reconcile(args):
    report = _run(lambda db: maintenance.reconcile_enrollment_statuses(db, dry_run=args.dry_run), args.dry_run)
    _print(report.to_dict())


def cmd_cleanup(args):
    report = _run(lambda db: maintenance.cleanup_stuck_attempts(db, dry_run=args.dry_run), args.dry_run)
    _print(report.to_dict())


def cmd_seed_templates(args):
    _print(_run(permission_templates.seed_builtin_templates))


def cmd_promote(args):
    user = _run(lambda db: admin_service.promote_to_educator(db, args.email))
    print(f"{user.email} is now an approved educator (id={user.id})")


def cmd_purge_sessions(args):
    removed = _run(session_manager.purge_sessions)
    print(f"Removed {removed} sessions")


def cmd_hash_password(args):
    # for SUPER_ADMIN_PASSWORD_HASH
    print(hash_password(args.password))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="quizhub-admin", description="QuizHub maintenance commands")
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("init-db", help="create all tables (development only)").set_defaults(func=cmd_init_db)

    p = sub.add_parser("reconcile-enrollments", help="recompute enrollment statuses from attempts")
    p.add_argument("--dry-run", action="store_true")
    p.set_defaults(func=cmd_reconcile)

    p = sub.add_parser("cleanup-stuck-attempts", help="time out or abandon stale in-progress attempts")
    p.add_argument("--dry-run", action="store_true")
    p.set_defaults(func=cmd_cleanup)

    sub.add_parser("seed-templates", help="create the built-in permission templates").set_defaults(
        func=cmd_seed_templates
    )

    p = sub.add_parser("promote-educator", help="turn an account into an approved educator")
    p.add_argument("email")
    p.set_defaults(func=cmd_promote)

    sub.add_parser("purge-sessions", help="delete revoked and long-expired sessions").set_defaults(
        func=cmd_purge_sessions
    )

    p = sub.add_parser("hash-password", help="print a bcrypt hash")
    p.add_argument("password")
    p.set_defaults(func=cmd_hash_password)
    return parser


def main(argv=None) -> int:
    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    args = build_parser().parse_args(argv)
    try:
        args.func(args)
    except QuizHubError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
