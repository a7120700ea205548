import uuid
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
import utils.crud as crud
from core import schemas
from core.database import get_db
from utils.serialization import to_project_summary_schema, to_project_tree_schema

router = APIRouter(
    prefix="/api/projects",
    tags=["Projects"],
)

@router.get("/", response_model=List[schemas.ProjectSummary])
async def list_projects(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    projects = await crud.get_all_projects(db=db, skip=skip, limit=limit)
    return [to_project_summary_schema(p) for p in projects]

@router.get("/search", response_model=schemas.ProjectTree)
async def search_project(
    name: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
):
    db_project = await crud.search_project_by_name(db=db, partial_name=name)
    if db_project is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    return to_project_tree_schema(db_project)

@router.get("/by-ref/{scraped_data_id}", response_model=schemas.ProjectTree)
async def get_project_by_ref(
    scraped_data_id: str,
    db: AsyncSession = Depends(get_db),
):
    db_project = await crud.get_project_by_external_ref(db=db, scraped_data_id=scraped_data_id)
    if db_project is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    return to_project_tree_schema(db_project)

@router.get("/by-url", response_model=schemas.ProjectTree)
async def get_project_by_url(
    url: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
):
    db_project = await crud.get_project_by_markup_url(db=db, markup_url=url)
    if db_project is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    return to_project_tree_schema(db_project)

@router.get("/{project_id}", response_model=schemas.ProjectTree)
async def get_project(
    project_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    db_project = await crud.get_project(db=db, project_id=project_id)
    if db_project is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    return to_project_tree_schema(db_project)
