import enum
import uuid
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey
from datetime import datetime, timezone
from database import Base


def _uuid():
    return str(uuid.uuid4())


def _now():
    return datetime.now(timezone.utc)


class Subject(str, enum.Enum):
    maths = "maths"
    language = "language"
    science = "science"
    history = "history"
    coding = "coding"
    economics = "economics"


class Voice(str, enum.Enum):
    male = "male"
    female = "female"


class Style(str, enum.Enum):
    formal = "formal"
    casual = "casual"


class Companion(Base):
    __tablename__ = "companions"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    subject = Column(String, nullable=False, index=True)
    topic = Column(Text, nullable=False)
    voice = Column(String, nullable=False)
    style = Column(String, nullable=False)
    duration = Column(Integer, nullable=False) # minutes
    author = Column(String, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_now, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "subject": self.subject,
            "topic": self.topic,
            "voice": self.voice,
            "style": self.style,
            "duration": self.duration,
            "author": self.author,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class SessionHistory(Base):
    __tablename__ = "session_history"

    id = Column(String(36), primary_key=True, default=_uuid)
    companion_id = Column(String(36), ForeignKey("companions.id"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_now, index=True)


class Bookmark(Base):
    __tablename__ = "bookmarks"

    # (companion_id, user_id) is the logical identity; uniqueness is not declared
    # here, see BOOKMARK_DEDUPLICATE
    id = Column(String(36), primary_key=True, default=_uuid)
    companion_id = Column(String(36), ForeignKey("companions.id"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_now, index=True)
