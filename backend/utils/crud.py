import uuid
from sqlalchemy import select, func, text
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from core import models
from typing import List, Optional, Dict
import logging

logger = logging.getLogger(__name__)

def log_db_operation(operation: str, table: str, record_id: uuid.UUID, actor: str, additional_info: Optional[Dict] = None):
    """Log database operations with the acting component"""
    log_data = {
        "operation": operation,
        "table": table,
        "record_id": str(record_id),
        "actor": actor,
        "additional_info": additional_info or {}
    }
    logger.info(f"DB_OPERATION: {log_data}")

def _with_tree():
    return selectinload(models.MarkupProject.threads).selectinload(models.MarkupThread.comments)

# Project read operations
async def get_project(db: AsyncSession, project_id: uuid.UUID) -> Optional[models.MarkupProject]:
    result = await db.execute(
        select(models.MarkupProject)
        .options(_with_tree())
        .where(models.MarkupProject.id == project_id)
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()

async def get_project_by_external_ref(db: AsyncSession, scraped_data_id: str) -> Optional[models.MarkupProject]:
    """
    Load a project with its threads and comments by scraped-data reference.

    Threads and comments come back in the order they were ingested.
    """
    result = await db.execute(
        select(models.MarkupProject)
        .options(_with_tree())
        .where(models.MarkupProject.external_ref == scraped_data_id)
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()

async def search_project_by_name(db: AsyncSession, partial_name: str) -> Optional[models.MarkupProject]:
    """
    Find the most recently updated project whose name contains partial_name.

    The match is case-insensitive.
    """
    result = await db.execute(
        select(models.MarkupProject)
        .options(_with_tree())
        .where(models.MarkupProject.project_name.ilike(f"%{partial_name}%"))
        .order_by(models.MarkupProject.updated_at.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()

async def get_project_by_markup_url(db: AsyncSession, markup_url: str) -> Optional[models.MarkupProject]:
    """Most recently updated project scraped from markup_url, with its full tree."""
    result = await db.execute(
        select(models.MarkupProject)
        .options(_with_tree())
        .where(models.MarkupProject.markup_url == markup_url)
        .order_by(models.MarkupProject.updated_at.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()

async def get_all_projects(db: AsyncSession, skip: int = 0, limit: int = 100) -> List[models.MarkupProject]:
    result = await db.execute(
        select(models.MarkupProject)
        .order_by(models.MarkupProject.updated_at.desc())
        .offset(skip)
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    return result.scalars().all()

async def count_rows(db: AsyncSession) -> Dict[str, int]:
    counts = {}
    for model in (models.MarkupProject, models.MarkupThread, models.MarkupComment):
        result = await db.execute(select(func.count()).select_from(model))
        counts[model.__tablename__] = result.scalar_one()
    return counts

async def check_database(db: AsyncSession) -> bool:
    try:
        await db.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False
