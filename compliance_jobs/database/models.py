"""SQLAlchemy models for the tables the background jobs read and write."""

import uuid
from datetime import date, datetime, timezone
from typing import Any, Optional

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    TIMESTAMP,
    Boolean,
    Date,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from compliance_jobs.core.database import Base

EMBEDDING_DIMENSIONS = 1536


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_id(prefix: str):
    """Return a default factory producing prefixed ids such as ``org_3f2a...``."""

    def _factory() -> str:
        return f"{prefix}_{uuid.uuid4().hex}"

    return _factory


class Organization(Base):
    """Tenant."""

    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id("org"))
    name: Mapped[str] = mapped_column(String, nullable=False)
    employee_sync_provider: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), default=_utcnow)

    members: Mapped[list["Member"]] = relationship("Member", back_populates="organization")


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id("usr"))
    email: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    name: Mapped[str | None] = mapped_column(String, nullable=True)


class Member(Base):
    """Membership of a user in an organization. ``role`` is a comma-separated role list."""

    __tablename__ = "members"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id("mem"))
    organization_id: Mapped[str] = mapped_column(
        String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role: Mapped[str] = mapped_column(String, nullable=False, default="employee")
    deactivated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    organization: Mapped["Organization"] = relationship("Organization", back_populates="members")
    user: Mapped["User"] = relationship("User", lazy="joined")


class IntegrationProvider(Base):
    __tablename__ = "integration_providers"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id("prv"))
    slug: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False)


class IntegrationConnection(Base):
    """A tenant's link to an external provider."""

    __tablename__ = "integration_connections"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id("icn"))
    organization_id: Mapped[str] = mapped_column(
        String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    provider_id: Mapped[str] = mapped_column(
        String, ForeignKey("integration_providers.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")  # active | inactive | error
    variables: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_sync_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), default=_utcnow, onupdate=_utcnow)

    provider: Mapped["IntegrationProvider"] = relationship("IntegrationProvider", lazy="joined")
    organization: Mapped["Organization"] = relationship("Organization")


class IntegrationCheckRun(Base):
    """One execution of a check (or of all checks) against a connection."""

    __tablename__ = "integration_check_runs"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id("icr"))
    connection_id: Mapped[str] = mapped_column(
        String, ForeignKey("integration_connections.id", ondelete="CASCADE"), nullable=False, index=True
    )
    task_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True, index=True
    )
    check_id: Mapped[str] = mapped_column(String, nullable=False)
    check_name: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")  # pending | running | success | failed
    started_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_checked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    passed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), default=_utcnow)

    results: Mapped[list["IntegrationCheckResult"]] = relationship(
        "IntegrationCheckResult", back_populates="check_run", cascade="all, delete-orphan"
    )


class IntegrationCheckResult(Base):
    __tablename__ = "integration_check_results"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id("icx"))
    check_run_id: Mapped[str] = mapped_column(
        String, ForeignKey("integration_check_runs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    passed: Mapped[bool] = mapped_column(Boolean, nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    resource_type: Mapped[str | None] = mapped_column(String, nullable=True)
    resource_id: Mapped[str | None] = mapped_column(String, nullable=True)
    severity: Mapped[str | None] = mapped_column(String, nullable=True)  # info | low | medium | high | critical
    remediation: Mapped[str | None] = mapped_column(Text, nullable=True)
    evidence: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    collected_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), default=_utcnow)

    check_run: Mapped["IntegrationCheckRun"] = relationship("IntegrationCheckRun", back_populates="results")


class ManualAnswer(Base):
    """Tenant-owned question/answer pair mirrored into the vector index."""

    __tablename__ = "manual_answers"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id("sqa"))
    organization_id: Mapped[str] = mapped_column(
        String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question: Mapped[str] = mapped_column(Text, nullable=False)
    answer: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), default=_utcnow, onupdate=_utcnow)


class VectorEmbedding(Base):
    """Vector index row. Manual answers are stored under ``manual_answer_{id}``."""

    __tablename__ = "vector_embeddings"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    organization_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    source_type: Mapped[str] = mapped_column(String, nullable=False)  # manual_answer | knowledge_base_document | policy
    source_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    embedding: Mapped[list[float] | None] = mapped_column(Vector(EMBEDDING_DIMENSIONS), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), default=_utcnow, onupdate=_utcnow)


class Policy(Base):
    __tablename__ = "policies"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id("pol"))
    organization_id: Mapped[str] = mapped_column(
        String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")  # draft | published | needs_review | archived
    frequency: Mapped[str | None] = mapped_column(String, nullable=True)  # monthly | quarterly | yearly
    review_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    assignee_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("members.id", ondelete="SET NULL"), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), default=_utcnow, onupdate=_utcnow)

    organization: Mapped["Organization"] = relationship("Organization")
    assignee: Mapped[Optional["Member"]] = relationship("Member")


class Task(Base):
    """Compliance task with a review cadence and evidence automations."""

    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id("tsk"))
    organization_id: Mapped[str] = mapped_column(
        String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="todo")  # todo | in_progress | done | failed
    frequency: Mapped[str | None] = mapped_column(String, nullable=True)
    review_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    assignee_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("members.id", ondelete="SET NULL"), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), default=_utcnow, onupdate=_utcnow)

    organization: Mapped["Organization"] = relationship("Organization")
    assignee: Mapped[Optional["Member"]] = relationship("Member")
    evidence_automations: Mapped[list["EvidenceAutomation"]] = relationship(
        "EvidenceAutomation", back_populates="task", cascade="all, delete-orphan"
    )
    integration_check_runs: Mapped[list["IntegrationCheckRun"]] = relationship("IntegrationCheckRun")


class EvidenceAutomation(Base):
    """Custom automation attached to a task."""

    __tablename__ = "evidence_automations"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id("aut"))
    task_id: Mapped[str] = mapped_column(String, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    task: Mapped["Task"] = relationship("Task", back_populates="evidence_automations")
    runs: Mapped[list["EvidenceAutomationRun"]] = relationship(
        "EvidenceAutomationRun", cascade="all, delete-orphan"
    )


class EvidenceAutomationRun(Base):
    __tablename__ = "evidence_automation_runs"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id("ear"))
    automation_id: Mapped[str] = mapped_column(
        String, ForeignKey("evidence_automations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    evaluation_status: Mapped[str | None] = mapped_column(String, nullable=True)  # pass | fail
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), default=_utcnow)
