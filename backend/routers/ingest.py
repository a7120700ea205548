from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from core import schemas
from core.database import get_db
from utils.ingestion import ingest_markup_payload

router = APIRouter(
    prefix="/api",
    tags=["Ingestion"],
)

@router.post("/ingest", response_model=schemas.IngestResult, status_code=status.HTTP_201_CREATED)
async def ingest_project(
    payload: schemas.IngestRequest,
    db: AsyncSession = Depends(get_db),
):
    # Taxonomy errors are translated to responses by the handlers in main.py
    project_id = await ingest_markup_payload(
        db,
        scraped_data_id=payload.scraped_data_id,
        project_name=payload.project_name,
        threads=payload.threads,
        markup_url=payload.markup_url,
    )
    total_comments = sum(len(thread.get("comments") or []) for thread in payload.threads)
    return schemas.IngestResult(
        project_id=project_id,
        scraped_data_id=payload.scraped_data_id,
        total_threads=len(payload.threads),
        total_comments=total_comments,
    )
