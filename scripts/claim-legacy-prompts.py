#!/usr/bin/env python3
from __future__ import annotations

from argparse import ArgumentParser

from db.session import SessionLocal
from generation.intake import claim_legacy_prompts


def main() -> None:
    parser = ArgumentParser(description="Assign prompts without an owner to a subject")
    parser.add_argument("subject", help="Subject id that takes ownership")
    args = parser.parse_args()

    session = SessionLocal()
    try:
        migrated = claim_legacy_prompts(session, args.subject)
        print(f"[claim] subject={args.subject} migrated={migrated}")
    finally:
        session.close()


if __name__ == "__main__":
    main()
