import uuid
from sqlalchemy import Column, String, Text, ForeignKey, DateTime, JSON, Integer, Boolean
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .database import Base

class MarkupProject(Base):
    __tablename__ = "markup_projects"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # Reference to the scraped source; one project per scraped document
    external_ref = Column(String(255), nullable=False, unique=True, index=True)
    project_name = Column(String(255), nullable=False, index=True)
    markup_url = Column(Text, nullable=True)
    has_attachments = Column(Boolean, nullable=False, default=False)
    total_threads = Column(Integer, nullable=False, default=0)
    total_screenshots = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    threads = relationship(
        "MarkupThread",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="MarkupThread.position",
    )

class MarkupThread(Base):
    __tablename__ = "markup_threads"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id = Column(UUID(as_uuid=True), ForeignKey("markup_projects.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    thread_name = Column(String(255), nullable=False)
    image_index = Column(Integer, nullable=True)
    image_path = Column(Text, nullable=False)
    image_filename = Column(String(255), nullable=True)
    has_attachments = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    project = relationship("MarkupProject", back_populates="threads")
    comments = relationship(
        "MarkupComment",
        back_populates="thread",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="MarkupComment.position",
    )

class MarkupComment(Base):
    __tablename__ = "markup_comments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    thread_id = Column(UUID(as_uuid=True), ForeignKey("markup_threads.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    comment_index = Column(Integer, nullable=False)
    pin_number = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    user_name = Column(String(255), nullable=False, index=True)
    has_attachments = Column(Boolean, nullable=False, default=False)
    # Ordered attachment URLs, never null
    attachments = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    thread = relationship("MarkupThread", back_populates="comments")

class SchemaMigration(Base):
    __tablename__ = "schema_migrations"

    version = Column(Integer, primary_key=True, autoincrement=False)
    description = Column(String(255), nullable=False)
    applied_at = Column(DateTime(timezone=True), server_default=func.now())
