#!/usr/bin/env python3
"""
Database initialization script for VideoFlow.

This script creates the database tables and optionally adds a demo creator
with a team for development.
"""
from config.settings import DevelopmentConfig
from videoflow import create_app
from videoflow.membership import create_team_for_creator
from videoflow.models import Role, User, db

DEMO_EMAIL = "creator@videoflow.local"


def init_db(drop_existing=False):
    """
    Initialize the database with tables.

    Args:
        drop_existing: Whether to drop existing tables first
    """
    app = create_app(DevelopmentConfig)

    with app.app_context():
        if drop_existing:
            print("Dropping existing tables...")
            db.drop_all()

        print("Creating database tables...")
        db.create_all()

        print("Database initialized successfully!")


def create_demo_creator(password: str = "creator123"):
    """Create a creator account that owns a team.

    Args:
        password: Password to set for the demo creator.
    """
    app = create_app(DevelopmentConfig)

    with app.app_context():
        if User.query.filter_by(email=DEMO_EMAIL).first():
            print("Demo creator already exists!")
            return

        creator = User(name="Demo Creator", email=DEMO_EMAIL, role=Role.CREATOR)
        creator.set_password(password)
        db.session.add(creator)
        db.session.flush()
        team = create_team_for_creator(creator)
        db.session.commit()

        print("Demo creator created:")
        print(f"  Email: {DEMO_EMAIL}")
        print(f"  Password: {password}")
        print(f"  Team: {team.name}")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Initialize VideoFlow database")
    parser.add_argument(
        "--drop", action="store_true", help="Drop existing tables first"
    )
    parser.add_argument(
        "--demo", action="store_true", help="Create a demo creator with a team"
    )
    parser.add_argument(
        "--password",
        type=str,
        help="Password to use with --demo (default: creator123)",
    )

    args = parser.parse_args()

    init_db(drop_existing=args.drop)
    if args.demo:
        create_demo_creator(password=args.password or "creator123")

    print("\nDatabase setup complete!")
    print("\nTo start the application:")
    print("  python main.py")
