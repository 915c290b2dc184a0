import json
import logging
import os
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import Request
from pydantic import BaseModel
from sqlalchemy import func, literal_column
from sqlmodel import Field, Session, SQLModel, create_engine, select

from backend.ai import ContentKind, Difficulty, QuestionSet

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./classgpt.db")

logger = logging.getLogger("database")


#######################
# MODELS
#######################


class Topic(SQLModel, table=True):
    __tablename__ = "topics"

    id: str = Field(primary_key=True)
    title: str = Field(index=True)
    subject: str = Field(index=True)
    difficulty: str
    content_type: str
    generated_content: str = Field(description="notes/slides/mcqs stored as a JSON string")
    created_at: datetime = Field(index=True)


#######################
# RESPONSE MODELS
#######################


class ContentRecord(BaseModel):
    id: str
    topic: str
    subject: str
    difficulty: Difficulty
    content_kind: ContentKind
    notes: Optional[str] = None
    slides: Optional[str] = None
    mcqs: Optional[QuestionSet] = None
    created_at: datetime

    def to_row(self) -> Topic:
        return Topic(
            id=self.id,
            title=self.topic,
            subject=self.subject,
            difficulty=self.difficulty.value,
            content_type=self.content_kind.value,
            generated_content=json.dumps(
                self.model_dump(mode="json", include={"notes", "slides", "mcqs"})
            ),
            created_at=self.created_at,
        )

    @classmethod
    def from_row(cls, row: Topic) -> "ContentRecord":
        content = json.loads(row.generated_content or "{}")
        created_at = row.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return cls(
            id=row.id,
            topic=row.title,
            subject=row.subject,
            difficulty=row.difficulty,
            content_kind=row.content_type,
            notes=content.get("notes"),
            slides=content.get("slides"),
            mcqs=content.get("mcqs"),
            created_at=created_at,
        )


class TopicStats(BaseModel):
    total_topics: int
    subjects: List[str]
    difficulty_distribution: dict[str, int]
    content_kind_distribution: dict[str, int]


#######################
# STORE
#######################


class RecordStore:
    """
    Persists ContentRecords in the `topics` table.

    Args:
        database_url (str, optional): SQLAlchemy URL. Defaults to DATABASE_URL.

    Call `init()` once at startup to create the table and `close()` on shutdown.
    Each operation opens its own short session; single-row inserts and deletes
    are left to the database for atomicity.
    """

    def __init__(self, database_url: str = None):
        self.database_url = database_url or DATABASE_URL
        # Listing order falls back to SQLite's rowid
        if not self.database_url.startswith("sqlite"):
            raise ValueError(f"RecordStore only supports sqlite URLs, got '{self.database_url.split(':', 1)[0]}'")
        self.engine = create_engine(self.database_url, echo=False, connect_args={"check_same_thread": False})

    def init(self):
        SQLModel.metadata.create_all(bind=self.engine)
        logger.info(f"[init] Topics table ready ({self.engine.url.render_as_string(hide_password=True)}).")

    def close(self):
        self.engine.dispose()

    def put(self, record: ContentRecord) -> ContentRecord:
        with Session(self.engine) as session:
            session.add(record.to_row())
            session.commit()
        logger.info(f"[put] Stored record {record.id} ({record.content_kind.value}) for '{record.topic}'.")
        return record

    def get(self, record_id: str) -> Optional[ContentRecord]:
        with Session(self.engine) as session:
            row = session.get(Topic, record_id)
            return ContentRecord.from_row(row) if row else None

    def list(self, limit: int = 50, query: str = None, subject: str = None) -> List[ContentRecord]:
        """Most recent first. `query` matches topic titles case-insensitively, `subject` exactly."""
        statement = select(Topic)
        if query:
            statement = statement.where(func.lower(Topic.title).contains(query.lower()))
        if subject:
            statement = statement.where(Topic.subject == subject)
        # rowid breaks ties between records created within the same clock tick
        statement = statement.order_by(Topic.created_at.desc(), literal_column("rowid").desc()).limit(limit)
        with Session(self.engine) as session:
            return [ContentRecord.from_row(row) for row in session.exec(statement).all()]

    def delete(self, record_id: str) -> bool:
        """Delete one record. Returns False when no record has that id."""
        with Session(self.engine) as session:
            row = session.get(Topic, record_id)
            if not row:
                return False
            session.delete(row)
            session.commit()
        logger.info(f"[delete] Deleted record {record_id}.")
        return True

    def stats(self) -> TopicStats:
        with Session(self.engine) as session:
            total = session.exec(select(func.count()).select_from(Topic)).one()
            subjects = session.exec(select(Topic.subject).distinct().order_by(Topic.subject)).all()
            by_difficulty = dict(session.exec(select(Topic.difficulty, func.count()).group_by(Topic.difficulty)).all())
            by_kind = dict(session.exec(select(Topic.content_type, func.count()).group_by(Topic.content_type)).all())
        return TopicStats(
            total_topics=total,
            subjects=list(subjects),
            difficulty_distribution={d.value: by_difficulty.get(d.value, 0) for d in Difficulty},
            content_kind_distribution={k.value: by_kind.get(k.value, 0) for k in ContentKind},
        )


def get_store(request: Request) -> RecordStore:
    return request.app.state.store
