#!/usr/bin/env python3
from __future__ import annotations

from argparse import ArgumentParser

from sqlalchemy import desc, func, select

from db.models import Mux, Prompt, Video
from db.session import SessionLocal


def main() -> None:
    parser = ArgumentParser(description="Show recent render job statuses")
    parser.add_argument("--limit", type=int, default=10)
    parser.add_argument("--summary", action="store_true")
    parser.add_argument("--failed", action="store_true", help="Show failed jobs with error message")
    args = parser.parse_args()

    session = SessionLocal()
    try:
        if args.summary:
            for model in (Video, Mux):
                stmt = select(model.status, func.count()).group_by(model.status)
                for status, count in session.execute(stmt).all():
                    print(f"[summary] {model.__tablename__} {status}: {count}")
            return
        stmt = select(Video, Prompt.prompt_id).join(Prompt, Video.prompt_id == Prompt.id)
        if args.failed:
            stmt = stmt.where(Video.status == "FAILED")
        stmt = stmt.order_by(desc(Video.created_at)).limit(args.limit)
        for video, prompt_id in session.execute(stmt).all():
            mux = session.execute(
                select(Mux).where(Mux.video_id == video.id).order_by(desc(Mux.created_at)).limit(1)
            ).scalars().first()
            mux_status = mux.status if mux is not None else "-"
            print(
                f"[job] prompt={prompt_id} job_id={video.job_id} video={video.status} mux={mux_status}"
            )
            if args.failed and video.error_message:
                print(f"[job] error={video.error_message}")
    finally:
        session.close()


if __name__ == "__main__":
    main()
