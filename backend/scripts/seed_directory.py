#!/usr/bin/env python
"""Idempotent seed script for the staff directory.

Audit readers resolve actor names and current roles from the ``users`` table, so
a fresh database needs at least the coordinator accounts before entries render
with names.

Usage:
    python backend/scripts/seed_directory.py               # seed normally
    python backend/scripts/seed_directory.py --show-users  # print users per role (after ensuring seed)
    python backend/scripts/seed_directory.py --dry-run     # run logic then rollback (no DB changes)
    python backend/scripts/seed_directory.py --dry-run --show-users
"""
from __future__ import annotations
import os, sys, argparse, textwrap
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from school_audit import create_app, get_db  # type: ignore
from school_audit.models.directory import Base, StaffUser
from school_audit.services.policy import get_policy
import school_audit.models.audit  # noqa: F401

# (username, first name, last name, role)
STAFF_PRESETS = [
    ('ict.coordinator', 'ICT', 'Coordinator', 'ICT_Coordinator'),
    ('admin', 'School', 'Administrator', 'Admin'),
    ('registrar', 'School', 'Registrar', 'Registrar'),
]


def ensure_staff(session):
    existing = {u.username for u in session.execute(select(StaffUser)).scalars().all()}
    created = 0
    for username, first, last, role in STAFF_PRESETS:
        if username in existing:
            continue
        session.add(StaffUser(username=username, first_name=first, last_name=last, role=role, is_active=True))
        created += 1
    session.flush()
    return created


def print_user_summary(session):
    users = session.execute(select(StaffUser).order_by(StaffUser.role, StaffUser.username)).scalars().all()
    if not users:
        print("[INFO] No users present.")
        return
    policy = get_policy()
    name_w = max(len(u.username) for u in users)
    full_w = max(len(u.display_name) for u in users)
    print(f"{'Username'.ljust(name_w)} | {'Name'.ljust(full_w)} | {'Role'.ljust(16)} | Audit scope")
    print('-' * (name_w + full_w + 43))
    for u in users:
        scope = policy.allowed_categories(u.role)
        scope_text = 'ALL' if policy.is_unrestricted(u.role) else (', '.join(sorted(scope)) or 'none')
        print(f"{u.username.ljust(name_w)} | {u.display_name.ljust(full_w)} | {u.role.ljust(16)} | {scope_text}")


def parse_args():
    p = argparse.ArgumentParser(
        description="Seed staff directory users",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_directory.py\n  dry run: seed_directory.py --dry-run\n  show users: seed_directory.py --show-users\n""")
    )
    p.add_argument('--show-users', action='store_true', help='Print users with their audit scope after seeding')
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    return p.parse_args()


def main():
    args = parse_args()
    app = create_app()
    with app.app_context():
        session = get_db()
        try:
            session.execute(text('SELECT 1 FROM users LIMIT 1'))
        except SQLAlchemyError:
            # Bootstrap only; real environments run alembic upgrade
            session.rollback()
            Base.metadata.create_all(session.get_bind())
        finally:
            session.commit()

    with app.app_context():
        session = get_db()
        created = ensure_staff(session)
        if args.show_users:
            print_user_summary(session)
        if args.dry_run:
            session.rollback()
            print(f"[DRY-RUN] (rolled back) Users would create: {created}")
        else:
            session.commit()
            print(f"[DONE] Users created: {created}")


if __name__ == '__main__':
    main()
