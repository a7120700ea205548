"""
Serialization utilities for converting database models to API schemas.
Centralizes the markup tree layout returned to downstream readers.
"""

import json
from typing import Any, List
from core import schemas, models


def normalize_attachment_list(attachments: Any) -> List[str]:
    """
    Normalize a stored attachments value to a list of URLs.

    Rows written before the attachments column existed may hold NULL.
    """
    if attachments is None:
        return []
    if isinstance(attachments, str):
        try:
            parsed = json.loads(attachments)
        except (json.JSONDecodeError, TypeError):
            return [attachments] if attachments else []
        return [str(url) for url in parsed] if isinstance(parsed, list) else []
    return [str(url) for url in attachments]


def to_comment_schema(db_comment: models.MarkupComment) -> schemas.Comment:
    return schemas.Comment(
        id=db_comment.id,
        index=db_comment.comment_index,
        pin_number=db_comment.pin_number,
        content=db_comment.content,
        user=db_comment.user_name,
        has_attachments=bool(db_comment.has_attachments),
        attachments=normalize_attachment_list(db_comment.attachments),
    )


def to_thread_schema(db_thread: models.MarkupThread) -> schemas.Thread:
    return schemas.Thread(
        id=db_thread.id,
        thread_name=db_thread.thread_name,
        image_index=db_thread.image_index,
        image_path=db_thread.image_path,
        image_filename=db_thread.image_filename,
        has_attachments=bool(db_thread.has_attachments),
        comments=[to_comment_schema(c) for c in db_thread.comments],
    )


def to_project_summary_schema(db_project: models.MarkupProject) -> schemas.ProjectSummary:
    return schemas.ProjectSummary(
        id=db_project.id,
        scraped_data_id=db_project.external_ref,
        project_name=db_project.project_name,
        markup_url=db_project.markup_url,
        has_attachments=bool(db_project.has_attachments),
        total_threads=db_project.total_threads or 0,
        total_screenshots=db_project.total_screenshots or 0,
        created_at=db_project.created_at,
        updated_at=db_project.updated_at,
    )


def to_project_tree_schema(db_project: models.MarkupProject) -> schemas.ProjectTree:
    """
    Convert a project loaded with its threads and comments to the tree schema.

    Args:
        db_project: Project with threads and comments eagerly loaded

    Returns:
        ProjectTree with threads and comments in ingestion order
    """
    summary = to_project_summary_schema(db_project)
    return schemas.ProjectTree(
        **summary.model_dump(),
        threads=[to_thread_schema(t) for t in db_project.threads],
    )
