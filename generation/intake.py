from __future__ import annotations

from dataclasses import dataclass
import logging

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError

from db.models import DEFAULT_LANGUAGE, UNKNOWN_SUBJECT, Prompt, UserAccount, new_public_id
from pipeline.errors import PromptNotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromptCreation:
    prompt: Prompt
    user: UserAccount


def normalize_language(language: str | None) -> str:
    value = (language or "").strip().lower()
    return value or DEFAULT_LANGUAGE


def normalize_subject(subject_id: str | None) -> str:
    value = (subject_id or "").strip()
    return value or UNKNOWN_SUBJECT


def upsert_user(session, subject_id: str) -> UserAccount:
    """Create the user row for ``subject_id`` unless it already exists.

    The insert runs in a savepoint so a concurrent insert of the same subject
    only costs a re-select.
    """
    stmt = select(UserAccount).where(UserAccount.subject_id == subject_id)
    user = session.execute(stmt).scalar_one_or_none()
    if user is not None:
        return user
    try:
        with session.begin_nested():
            user = UserAccount(subject_id=subject_id)
            session.add(user)
    except IntegrityError:
        user = session.execute(stmt).scalar_one()
    return user


def create_prompt_for_user(
    session,
    text: str,
    language: str | None = None,
    subject_id: str | None = None,
) -> PromptCreation:
    cleaned = (text or "").strip()
    if not cleaned:
        raise ValueError("Prompt text must not be empty")
    user = upsert_user(session, normalize_subject(subject_id))
    prompt = Prompt(
        prompt_id=new_public_id(),
        prompt=cleaned,
        language=normalize_language(language),
        subject_id=user.subject_id,
    )
    session.add(prompt)
    session.commit()
    logger.info("created prompt %s for subject %s", prompt.prompt_id, user.subject_id)
    return PromptCreation(prompt=prompt, user=user)


def get_prompt_by_public_id(session, prompt_id: str) -> Prompt | None:
    stmt = select(Prompt).where(Prompt.prompt_id == prompt_id)
    return session.execute(stmt).scalar_one_or_none()


def require_prompt_by_public_id(session, prompt_id: str) -> Prompt:
    prompt = get_prompt_by_public_id(session, prompt_id)
    if prompt is None:
        raise PromptNotFound(prompt_id)
    return prompt


def claim_legacy_prompts(session, subject_id: str) -> int:
    """Hand prompts without a real owner to ``subject_id``; returns how many moved."""
    user = upsert_user(session, normalize_subject(subject_id))
    if user.subject_id == UNKNOWN_SUBJECT:
        return 0
    result = session.execute(
        update(Prompt)
        .where(or_(Prompt.subject_id.is_(None), Prompt.subject_id == UNKNOWN_SUBJECT))
        .values(subject_id=user.subject_id)
        .execution_options(synchronize_session=False)
    )
    session.commit()
    return int(result.rowcount or 0)
