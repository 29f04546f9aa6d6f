from __future__ import annotations

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

UNKNOWN_SUBJECT = "unknown"
DEFAULT_LANGUAGE = "english"

_STATUS_CHECK = "status in ('QUEUED', 'PROCESSING', 'COMPLETED', 'FAILED')"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def new_public_id() -> str:
    return uuid4().hex


class UserAccount(Base):
    __tablename__ = "user_account"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    subject_id: Mapped[str] = mapped_column(Text, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    prompts: Mapped[list["Prompt"]] = relationship(back_populates="owner")


class Prompt(Base):
    __tablename__ = "prompt"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    prompt_id: Mapped[str] = mapped_column(Text, unique=True, default=new_public_id)
    prompt: Mapped[str] = mapped_column(Text)
    language: Mapped[str] = mapped_column(Text, default=DEFAULT_LANGUAGE)
    subject_id: Mapped[str | None] = mapped_column(
        Text,
        ForeignKey("user_account.subject_id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    owner: Mapped[UserAccount | None] = relationship(back_populates="prompts")
    scripts: Mapped[list["Script"]] = relationship(back_populates="prompt")
    audios: Mapped[list["Audio"]] = relationship(back_populates="prompt")
    videos: Mapped[list["Video"]] = relationship(back_populates="prompt")
    muxes: Mapped[list["Mux"]] = relationship(back_populates="prompt")


class Script(Base):
    __tablename__ = "script"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    script_id: Mapped[str] = mapped_column(Text, unique=True, default=new_public_id)
    prompt_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("prompt.id", ondelete="CASCADE"))
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    explanation: Mapped[str] = mapped_column(Text)
    script: Mapped[str] = mapped_column(Text)
    narration: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    prompt: Mapped[Prompt] = relationship(back_populates="scripts")


class Audio(Base):
    __tablename__ = "audio"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    prompt_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("prompt.id", ondelete="CASCADE"))
    script_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("script.id", ondelete="SET NULL"), nullable=True
    )
    audio_url: Mapped[str] = mapped_column(Text)
    used_test_audio: Mapped[bool] = mapped_column(Boolean, default=False)
    language: Mapped[str] = mapped_column(Text, default=DEFAULT_LANGUAGE)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    prompt: Mapped[Prompt] = relationship(back_populates="audios")


class Video(Base):
    __tablename__ = "video"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    prompt_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("prompt.id", ondelete="CASCADE"))
    status: Mapped[str] = mapped_column(Text, default="QUEUED")
    job_id: Mapped[str | None] = mapped_column(Text, unique=True, nullable=True)
    video_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    quality: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    prompt: Mapped[Prompt] = relationship(back_populates="videos")
    muxes: Mapped[list["Mux"]] = relationship(back_populates="video")

    __table_args__ = (
        CheckConstraint(_STATUS_CHECK, name="ck_video_status"),
        CheckConstraint(
            "(status = 'COMPLETED') = (video_url IS NOT NULL)", name="ck_video_url_completed"
        ),
        CheckConstraint(
            "(status = 'FAILED') = (error_message IS NOT NULL)", name="ck_video_error_failed"
        ),
    )


class Mux(Base):
    __tablename__ = "mux"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    prompt_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("prompt.id", ondelete="CASCADE"))
    video_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("video.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(Text, default="QUEUED")
    job_id: Mapped[str | None] = mapped_column(Text, unique=True, nullable=True)
    final_video_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    output_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    bucket_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    prompt: Mapped[Prompt] = relationship(back_populates="muxes")
    video: Mapped[Video | None] = relationship(back_populates="muxes")

    __table_args__ = (
        CheckConstraint(_STATUS_CHECK, name="ck_mux_status"),
        CheckConstraint(
            "(status = 'COMPLETED') = (final_video_url IS NOT NULL)",
            name="ck_mux_url_completed",
        ),
        CheckConstraint(
            "(status = 'FAILED') = (error_message IS NOT NULL)", name="ck_mux_error_failed"
        ),
    )
