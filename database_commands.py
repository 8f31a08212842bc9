#!/usr/bin/env python3
"""
Database Management Commands for Fleet Manager

Setup and inspection commands for a deployment:
- Connection test and per-table record counts
- Creating the first super admin
- Seeding the default part types
- Seeding demo data

Usage:
    python database_commands.py --help
    python database_commands.py status
    python database_commands.py create-admin --email admin@example.com --name Admin
    python database_commands.py seed-part-types
    python database_commands.py seed-demo
"""

import os
import sys
import argparse
import getpass
import logging
from datetime import datetime
from sqlalchemy import text, inspect
from werkzeug.security import generate_password_hash
from app import create_app, db

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_EMAIL = 'admin@fleet.local'


def setup_app_context():
    """Setup Flask application context for database operations."""
    # Set a temporary SESSION_SECRET for CLI operations if not set
    if not os.environ.get('SESSION_SECRET'):
        os.environ['SESSION_SECRET'] = 'cli_temp_secret_not_for_production'

    app = create_app()
    return app.app_context()


def create_super_admin(email, name, password):
    """Create a SUPER_ADMIN user; returns None if the email is already taken"""
    from models import User, UserRole

    email = email.strip().lower()
    if User.query.filter_by(email=email).first():
        logger.info(f"User {email} already exists")
        return None

    user = User()
    user.email = email
    user.name = name
    user.password_hash = generate_password_hash(password)
    user.role = UserRole.SUPER_ADMIN
    user.active = True
    db.session.add(user)
    db.session.commit()
    logger.info(f"Created super admin {email}")
    return user


def seed_demo_data():
    """
    Seed a fresh database: the initial super admin and the default part types.

    The admin is only created when ADMIN_INITIAL_PASSWORD is set and no super
    admin exists yet.
    """
    from models import User, UserRole
    from fleet_routes import seed_default_part_types

    seed_default_part_types()

    if User.query.filter_by(role=UserRole.SUPER_ADMIN).first():
        logger.info("Super admin already exists, skipping admin seed")
        return

    password = os.environ.get('ADMIN_INITIAL_PASSWORD')
    if not password:
        logger.warning("ADMIN_INITIAL_PASSWORD not set, no admin user created")
        return

    create_super_admin(os.environ.get('ADMIN_EMAIL', DEFAULT_ADMIN_EMAIL), 'Administrator', password)


def cmd_status(args):
    """Display database connection status and table counts."""
    with setup_app_context():
        print("=" * 60)
        print("DATABASE STATUS REPORT")
        print("=" * 60)

        try:
            with db.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            print("Connection Status: HEALTHY")
        except Exception as e:
            print(f"Connection Status: FAILED ({str(e)})")
            sys.exit(1)

        print(f"Engine: {db.engine.dialect.name}")
        print("\nTable Statistics:")
        with db.engine.connect() as conn:
            for table in sorted(inspect(db.engine).get_table_names()):
                count = conn.execute(text(f'SELECT COUNT(*) FROM "{table}"')).scalar()
                print(f"  {table}: {count} records")

        print(f"\nReport Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")


def cmd_create_admin(args):
    """Create a super admin, prompting for the password if not given."""
    password = args.password or os.environ.get('ADMIN_INITIAL_PASSWORD') or getpass.getpass('Password: ')
    if len(password) < 6:
        print("Password must be at least 6 characters")
        sys.exit(1)

    with setup_app_context():
        user = create_super_admin(args.email, args.name, password)
        if user is None:
            print(f"User {args.email} already exists")
            sys.exit(1)
        print(f"Super admin created: {user.email}")


def cmd_seed_part_types(args):
    with setup_app_context():
        from fleet_routes import seed_default_part_types
        from models import PartTypeConfig
        seed_default_part_types()
        print(f"Part types available: {PartTypeConfig.query.count()}")


def cmd_seed_demo(args):
    with setup_app_context():
        seed_demo_data()
        print("Demo data seeded")


def main():
    """Main command line interface."""
    parser = argparse.ArgumentParser(
        description="Database Management Commands for Fleet Manager",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    subparsers.add_parser('status', help='Display database status')

    admin_parser = subparsers.add_parser('create-admin', help='Create a super admin user')
    admin_parser.add_argument('--email', default=DEFAULT_ADMIN_EMAIL, help='Login email')
    admin_parser.add_argument('--name', default='Administrator', help='Display name')
    admin_parser.add_argument('--password', help='Password (prompted if omitted)')

    subparsers.add_parser('seed-part-types', help='Insert missing default part types')
    subparsers.add_parser('seed-demo', help='Seed admin user and part types')

    args = parser.parse_args()

    commands = {
        'status': cmd_status,
        'create-admin': cmd_create_admin,
        'seed-part-types': cmd_seed_part_types,
        'seed-demo': cmd_seed_demo,
    }

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        commands[args.command](args)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        sys.exit(1)
    except Exception as e:
        logger.exception("Unexpected error occurred")
        print(f"Unexpected error: {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
