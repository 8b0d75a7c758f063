#!/usr/bin/env python3
"""
Management Commands for the Fleet Compliance service

Usage:
    python database_commands.py --help
    python database_commands.py init-db
    python database_commands.py scan-certificates [--window-days 30]
    python database_commands.py create-user --email admin@example.com --password ... [--role admin]
    python database_commands.py check-config

scan-certificates is the entry point for a periodic job runner (cron,
Cloud Scheduler); the service itself runs no scheduler.
"""

import os
import sys
import argparse
import logging
from datetime import datetime
from app import create_app, db

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

def setup_app_context():
    """Setup Flask application context for database operations."""
    # Set a temporary SESSION_SECRET for CLI operations if not set
    if not os.environ.get('SESSION_SECRET'):
        os.environ['SESSION_SECRET'] = 'cli_temp_secret_not_for_production'

    app = create_app()
    return app.app_context()

def cmd_init_db(args):
    """Create any missing tables."""
    with setup_app_context():
        db.create_all()
        print("✅ Database tables created")

def cmd_scan_certificates(args):
    """Run the certificate expiry scan once."""
    from services.certificate_service import CertificateService

    with setup_app_context():
        print(f"Scanning certificates (started {datetime.now().strftime('%Y-%m-%d %H:%M:%S')})...")
        summary = CertificateService(window_days=args.window_days).refresh_notifications()

        print(f"  Notifications created: {summary['created']}")
        print(f"  Notifications updated: {summary['updated']}")
        print(f"  Work gates revoked:    {summary['gates_revoked']}")

def cmd_create_user(args):
    """Create a dashboard user."""
    from werkzeug.security import generate_password_hash
    from models import User, UserRole

    with setup_app_context():
        email = args.email.strip().lower()
        if User.query.filter_by(email=email).first():
            print(f"❌ User already exists: {email}")
            sys.exit(1)

        user = User(
            email=email,
            password_hash=generate_password_hash(args.password),
            full_name=args.name,
            role=UserRole(args.role),
        )
        db.session.add(user)
        db.session.commit()
        print(f"✅ User created: {email} ({args.role})")

def cmd_check_config(args):
    """Report SMTP and Flask configuration issues."""
    from utils.config_validator import check_production_readiness

    status = check_production_readiness()
    print("=" * 60)
    print("CONFIGURATION REPORT")
    print("=" * 60)
    for section in ('smtp', 'flask'):
        result = status[section]
        print(f"{section.upper()}: {'✅ OK' if result['valid'] else '❌ ISSUES FOUND'}")
        for issue in result['issues']:
            print(f"  ⚠️  {issue}")

    if not status['ready']:
        sys.exit(1)

def main():
    """Main command line interface."""
    parser = argparse.ArgumentParser(
        description="Management Commands for the Fleet Compliance service",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    subparsers.add_parser('init-db', help='Create database tables')

    scan_parser = subparsers.add_parser('scan-certificates', help='Run the certificate expiry scan')
    scan_parser.add_argument('--window-days', type=int, default=None,
                             help='Expiry window in days (default: NOTIFICATION_EXPIRY_WINDOW_DAYS)')

    user_parser = subparsers.add_parser('create-user', help='Create a dashboard user')
    user_parser.add_argument('--email', required=True)
    user_parser.add_argument('--password', required=True)
    user_parser.add_argument('--name', default=None)
    user_parser.add_argument('--role', choices=['admin', 'coordinator', 'viewer'], default='coordinator')

    subparsers.add_parser('check-config', help='Validate SMTP and Flask configuration')

    args = parser.parse_args()

    commands = {
        'init-db': cmd_init_db,
        'scan-certificates': cmd_scan_certificates,
        'create-user': cmd_create_user,
        'check-config': cmd_check_config,
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
        print(f"❌ Unexpected error: {str(e)}")
        sys.exit(1)

if __name__ == "__main__":
    main()
