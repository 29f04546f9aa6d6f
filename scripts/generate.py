#!/usr/bin/env python3
from __future__ import annotations

from argparse import ArgumentParser
import json
import logging

from db.session import SessionLocal
from pipeline.factory import build_services


def main() -> None:
    parser = ArgumentParser(description="Generate a narrated video for one prompt")
    parser.add_argument("prompt", help="Topic to explain")
    parser.add_argument("--language", default="english")
    parser.add_argument("--quality", choices=["low", "medium", "high"], default=None)
    parser.add_argument("--subject", default=None, help="Owning subject id")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    services = build_services()
    session = SessionLocal()
    try:
        result = services.workflow.run(
            session,
            prompt_text=args.prompt,
            language=args.language,
            subject_id=args.subject,
            quality=args.quality,
        )
        payload = result.as_payload()
        payload.pop("result", None)
        print(json.dumps(payload, indent=2))
    finally:
        session.close()


if __name__ == "__main__":
    main()
