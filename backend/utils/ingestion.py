"""
Atomic ingestion of one scraped markup project.

A payload (project -> threads -> comments -> attachments) is written as a single
transaction: the project row is upserted on its scraped-data reference, the
project's previous threads and comments are purged, and the new snapshot is
inserted in payload order. Any failure rolls the whole call back.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence, Tuple, Union

from pydantic import ValidationError
from sqlalchemy import select, update, delete
from sqlalchemy import exc as sa_exc
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from core import models, schemas
from core.config import settings
from core.errors import (
    IngestionError,
    PayloadValidationError,
    ConstraintError,
    TransientStoreError,
)
from utils.attachments import find_duplicate_attachments, dedupe_attachments
from utils.crud import log_db_operation

logger = logging.getLogger(__name__)

ThreadInput = Union[schemas.ThreadPayload, Dict[str, Any]]

# Width of the String(255) name columns
_MAX_NAME_LENGTH = 255

_UPSERT_DIALECTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


async def ingest_markup_payload(
    db: AsyncSession,
    scraped_data_id: Union[str, int],
    project_name: str,
    threads: Optional[Sequence[ThreadInput]],
    markup_url: Optional[str] = None,
    timeout: Optional[float] = None,
) -> uuid.UUID:
    """
    Materialize one scraped project into project, thread and comment rows.

    Args:
        db: Database session; pending work on it is committed with the ingestion
        scraped_data_id: Stable reference of the scraped source
        project_name: Display name of the project
        threads: Thread payloads in page order
        markup_url: Optional URL of the scraped markup page
        timeout: Seconds allowed for the whole transaction (defaults to settings)

    Returns:
        The project's id, identical across re-ingestions of the same reference

    Raises:
        PayloadValidationError: a required field is missing or malformed
        ConstraintError: the store rejected the rows
        TransientStoreError: connection problem, lock or timeout; safe to retry
    """
    scraped_data_id = _require_text(scraped_data_id, "scrapedDataId")
    project_name = _require_text(project_name, "projectName", scraped_data_id)
    if threads is None:
        threads = []
    if isinstance(threads, (str, bytes, dict)) or not isinstance(threads, Sequence):
        raise PayloadValidationError(
            "threads must be a list of thread objects",
            field="threads",
            scraped_data_id=scraped_data_id,
        )

    timeout = settings.INGEST_TIMEOUT_SECONDS if timeout is None else timeout
    try:
        return await asyncio.wait_for(
            _ingest(db, scraped_data_id, project_name, threads, markup_url),
            timeout=timeout,
        )
    except asyncio.TimeoutError as exc:
        logger.error(f"Ingestion of {scraped_data_id} timed out after {timeout}s")
        raise TransientStoreError(
            f"Ingestion timed out after {timeout}s",
            scraped_data_id=scraped_data_id,
        ) from exc


async def _ingest(
    db: AsyncSession,
    scraped_data_id: str,
    project_name: str,
    threads: Sequence[ThreadInput],
    markup_url: Optional[str],
) -> uuid.UUID:
    try:
        project_id, total_comments = await _write_snapshot(db, scraped_data_id, project_name, threads, markup_url)
        await db.commit()
    except asyncio.CancelledError:
        await db.rollback()
        raise
    except Exception as exc:
        await db.rollback()
        translated = _translate_error(exc, scraped_data_id)
        logger.error(f"Ingestion of {scraped_data_id} rolled back: {translated}")
        if translated is exc:
            raise
        raise translated from exc

    log_db_operation(
        "INGEST",
        "markup_projects",
        project_id,
        "ingestion",
        {"scraped_data_id": scraped_data_id, "threads": len(threads), "comments": total_comments},
    )
    return project_id


async def _write_snapshot(
    db: AsyncSession,
    scraped_data_id: str,
    project_name: str,
    threads: Sequence[ThreadInput],
    markup_url: Optional[str],
) -> Tuple[uuid.UUID, int]:
    now = datetime.now(timezone.utc)
    project_id = await _upsert_project(db, scraped_data_id, project_name, markup_url, now)

    purged = await _purge_project_children(db, project_id)
    if purged:
        logger.info(f"Replacing {purged} stored threads of project {project_id}")

    total_comments = 0
    total_screenshots = 0
    project_has_attachments = False
    for position, raw_thread in enumerate(threads):
        thread = _parse_thread(raw_thread, position, scraped_data_id)
        db_thread = models.MarkupThread(
            id=uuid.uuid4(),
            project_id=project_id,
            position=position,
            thread_name=thread.thread_name,
            image_index=thread.image_index,
            image_path=thread.image_path,
            image_filename=thread.image_filename or f"thread_{position + 1}.jpg",
            has_attachments=False,
        )
        db.add(db_thread)
        await db.flush()

        thread_has_attachments = False
        for comment_position, raw_comment in enumerate(thread.comments):
            comment = _parse_comment(raw_comment, position, comment_position, scraped_data_id)
            has_attachments = comment.has_attachments if comment.has_attachments is not None else False
            db.add(models.MarkupComment(
                id=uuid.uuid4(),
                thread_id=db_thread.id,
                position=comment_position,
                comment_index=comment.index,
                pin_number=comment.pin_number,
                content=comment.content,
                user_name=comment.user,
                has_attachments=has_attachments,
                attachments=list(comment.attachments),
            ))
            await db.flush()
            thread_has_attachments = thread_has_attachments or has_attachments or bool(comment.attachments)
            total_comments += 1

        if thread_has_attachments:
            db_thread.has_attachments = True
            await db.flush()
        project_has_attachments = project_has_attachments or thread_has_attachments
        if thread.image_path:
            total_screenshots += 1

    await db.execute(
        update(models.MarkupProject)
        .where(models.MarkupProject.id == project_id)
        .values(
            has_attachments=project_has_attachments,
            total_threads=len(threads),
            total_screenshots=total_screenshots,
        )
        .execution_options(synchronize_session=False)
    )
    return project_id, total_comments


async def _upsert_project(
    db: AsyncSession,
    scraped_data_id: str,
    project_name: str,
    markup_url: Optional[str],
    now: datetime,
) -> uuid.UUID:
    """Insert the project row or refresh the existing one; returns its id."""
    values = {
        "id": uuid.uuid4(),
        "external_ref": scraped_data_id,
        "project_name": project_name,
        "markup_url": markup_url,
        "updated_at": now,
    }
    refresh = {"project_name": project_name, "updated_at": now}
    if markup_url is not None:
        refresh["markup_url"] = markup_url

    insert = _UPSERT_DIALECTS.get(db.get_bind().dialect.name)
    if insert is not None:
        stmt = (
            insert(models.MarkupProject)
            .values(**values)
            .on_conflict_do_update(index_elements=["external_ref"], set_=refresh)
            .returning(models.MarkupProject.id)
        )
        result = await db.execute(stmt)
        return result.scalar_one()

    # Dialects without ON CONFLICT: lock the existing row, then update or insert
    result = await db.execute(
        select(models.MarkupProject)
        .where(models.MarkupProject.external_ref == scraped_data_id)
        .with_for_update()
    )
    db_project = result.scalars().first()
    if db_project is None:
        db_project = models.MarkupProject(**values)
        db.add(db_project)
    else:
        for key, value in refresh.items():
            setattr(db_project, key, value)
    await db.flush()
    return db_project.id


async def _purge_project_children(db: AsyncSession, project_id: uuid.UUID) -> int:
    """Delete the comments and threads of a previous snapshot."""
    thread_ids = select(models.MarkupThread.id).where(models.MarkupThread.project_id == project_id)
    await db.execute(
        delete(models.MarkupComment)
        .where(models.MarkupComment.thread_id.in_(thread_ids))
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(
        delete(models.MarkupThread)
        .where(models.MarkupThread.project_id == project_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def _parse_thread(raw: ThreadInput, thread_index: int, scraped_data_id: str) -> schemas.ThreadPayload:
    try:
        return schemas.ThreadPayload.model_validate(raw)
    except ValidationError as exc:
        raise _payload_error("Invalid thread payload", exc, scraped_data_id, thread_index) from exc


def _parse_comment(
    raw: Any,
    thread_index: int,
    comment_index: int,
    scraped_data_id: str,
) -> schemas.CommentPayload:
    try:
        comment = schemas.CommentPayload.model_validate(raw)
    except ValidationError as exc:
        raise _payload_error("Invalid comment payload", exc, scraped_data_id, thread_index, comment_index) from exc

    duplicates = find_duplicate_attachments(comment.attachments)
    if duplicates:
        if settings.INGEST_REJECT_DUPLICATE_ATTACHMENTS:
            raise PayloadValidationError(
                f"Duplicate attachment URLs on one comment: {', '.join(duplicates)}",
                field="attachments",
                scraped_data_id=scraped_data_id,
                thread_index=thread_index,
                comment_index=comment_index,
            )
        logger.warning(
            f"Dropping {len(duplicates)} duplicate attachment URL(s) "
            f"at threads[{thread_index}].comments[{comment_index}] of {scraped_data_id}"
        )
        comment.attachments = dedupe_attachments(comment.attachments)
    return comment


def _payload_error(
    prefix: str,
    exc: ValidationError,
    scraped_data_id: str,
    thread_index: Optional[int] = None,
    comment_index: Optional[int] = None,
) -> PayloadValidationError:
    errors = [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "msg": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in exc.errors()
    ]
    first = errors[0] if errors else {"loc": [], "msg": str(exc)}
    field = ".".join(first["loc"]) or None
    message = f"{prefix}: {field}: {first['msg']}" if field else f"{prefix}: {first['msg']}"
    return PayloadValidationError(
        message,
        field=field,
        errors=errors,
        scraped_data_id=scraped_data_id,
        thread_index=thread_index,
        comment_index=comment_index,
    )


def _require_text(value: Any, field: str, scraped_data_id: Optional[str] = None) -> str:
    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str) or not value.strip():
        raise PayloadValidationError(
            f"{field} is required",
            field=field,
            scraped_data_id=scraped_data_id,
        )
    if len(value) > _MAX_NAME_LENGTH:
        raise PayloadValidationError(
            f"{field} exceeds {_MAX_NAME_LENGTH} characters",
            field=field,
            scraped_data_id=scraped_data_id,
        )
    return value


def _translate_error(exc: Exception, scraped_data_id: str) -> Exception:
    """Map store exceptions onto the ingestion error taxonomy."""
    if isinstance(exc, IngestionError):
        return exc
    if isinstance(exc, sa_exc.IntegrityError):
        return ConstraintError(f"Store constraint violated: {exc.orig}", scraped_data_id=scraped_data_id)
    if isinstance(exc, sa_exc.DataError):
        return PayloadValidationError(f"Store rejected a value: {exc.orig}", scraped_data_id=scraped_data_id)
    if isinstance(exc, (sa_exc.OperationalError, sa_exc.InterfaceError, sa_exc.TimeoutError)):
        return TransientStoreError(f"Store unavailable: {exc}", scraped_data_id=scraped_data_id)
    if isinstance(exc, sa_exc.DBAPIError) and exc.connection_invalidated:
        return TransientStoreError(f"Store connection lost: {exc}", scraped_data_id=scraped_data_id)
    if isinstance(exc, (ConnectionError, OSError)):
        return TransientStoreError(f"Store unavailable: {exc}", scraped_data_id=scraped_data_id)
    return exc
