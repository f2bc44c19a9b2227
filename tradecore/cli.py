"""CLI tool for admin operations.

Usage:
    python -m tradecore.cli add-venue
    python -m tradecore.cli issue-token [subject]
"""

import getpass
import sys

from sqlmodel import Session, select

from tradecore.database import engine, create_db_and_tables
from tradecore.models.venue import Venue
from tradecore.services.auth import create_access_token
from tradecore.services.encryption import encrypt_credentials
from tradecore.utils.constants import SUPPORTED_VENUES


def add_venue():
    """Store a venue with Fernet-encrypted API credentials."""
    create_db_and_tables()

    name = input(f"Venue ({', '.join(SUPPORTED_VENUES)}): ").strip().lower()
    if name not in SUPPORTED_VENUES:
        print(f"Unsupported venue '{name}'.")
        sys.exit(1)

    with Session(engine) as session:
        existing = session.exec(select(Venue).where(Venue.name == name)).first()
        if existing:
            print(f"Venue '{name}' already exists (id={existing.id}).")
            sys.exit(1)

    api_key = getpass.getpass("API key (blank for paper only): ").strip()
    api_secret = getpass.getpass("API secret: ").strip() if api_key else ""
    passphrase = getpass.getpass("Passphrase: ").strip() if api_key and name == "okx" else ""
    futures = input("Enable futures? [y/N]: ").strip().lower() == "y"

    venue = Venue(
        name=name,
        **encrypt_credentials(api_key, api_secret, passphrase),
        futures_enabled=futures,
    )
    with Session(engine) as session:
        session.add(venue)
        session.commit()
        session.refresh(venue)

    print(f"\nVenue '{name}' stored (id={venue.id}, credentials={'yes' if api_key else 'no'}).")


def issue_token(subject: str = "scheduler"):
    """Mint a service token for the engine endpoints."""
    print(create_access_token(subject))


def main():
    if len(sys.argv) < 2:
        print("Usage: python -m tradecore.cli <command>")
        print("Commands: add-venue, issue-token [subject]")
        sys.exit(1)

    command = sys.argv[1]
    if command == "add-venue":
        add_venue()
    elif command == "issue-token":
        issue_token(*sys.argv[2:3])
    else:
        print(f"Unknown command: {command}")
        sys.exit(1)


if __name__ == "__main__":
    main()
