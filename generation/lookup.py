from __future__ import annotations

from sqlalchemy import desc, select

from db.models import Audio, Mux, Prompt, Script, Video


def _latest(session, model, prompt: Prompt):
    stmt = (
        select(model)
        .where(model.prompt_id == prompt.id)
        .order_by(desc(model.created_at))
        .limit(1)
    )
    return session.execute(stmt).scalars().first()


def latest_script(session, prompt: Prompt) -> Script | None:
    return _latest(session, Script, prompt)


def latest_audio(session, prompt: Prompt) -> Audio | None:
    return _latest(session, Audio, prompt)


def latest_video(session, prompt: Prompt) -> Video | None:
    return _latest(session, Video, prompt)


def latest_mux(session, prompt: Prompt) -> Mux | None:
    return _latest(session, Mux, prompt)


def latest_completed_video(session, prompt: Prompt) -> Video | None:
    stmt = (
        select(Video)
        .where(Video.prompt_id == prompt.id, Video.status == "COMPLETED")
        .order_by(desc(Video.updated_at))
        .limit(1)
    )
    return session.execute(stmt).scalars().first()
