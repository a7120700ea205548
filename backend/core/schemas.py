import uuid
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime

# Ingestion payload schemas. Keys follow the extractor's camelCase JSON.
class CommentPayload(BaseModel):
    index: int
    pin_number: Optional[int] = Field(None, alias="pinNumber")
    content: str
    user: str = Field(..., max_length=255)
    has_attachments: Optional[bool] = Field(None, alias="hasAttachments")
    attachments: List[str] = Field(default_factory=list)

    @field_validator('attachments', mode='before')
    @classmethod
    def null_attachments_to_empty(cls, v):
        if v is None:
            return []
        return v

    @model_validator(mode='after')
    def default_pin_number(self):
        # Pin labels follow the comment sequence unless the page shows its own
        if self.pin_number is None:
            self.pin_number = self.index
        return self

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
    }

class ThreadPayload(BaseModel):
    thread_name: str = Field(..., alias="threadName", max_length=255)
    image_index: Optional[int] = Field(None, alias="imageIndex")
    image_path: str = Field(..., alias="imagePath")
    image_filename: Optional[str] = Field(None, alias="imageFilename", max_length=255)
    # Validated one by one during ingestion so failures can name the comment
    comments: List[Any] = Field(default_factory=list)

    @field_validator('image_index', mode='before')
    @classmethod
    def blank_image_index_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator('comments', mode='before')
    @classmethod
    def null_comments_to_empty(cls, v):
        if v is None:
            return []
        return v

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
    }

class IngestRequest(BaseModel):
    scraped_data_id: str = Field(..., alias="scrapedDataId", min_length=1, max_length=255)
    project_name: str = Field(..., alias="projectName", min_length=1, max_length=255)
    markup_url: Optional[str] = Field(None, alias="markupUrl")
    threads: List[Dict[str, Any]] = Field(default_factory=list)

    @field_validator('scraped_data_id', mode='before')
    @classmethod
    def stringify_scraped_data_id(cls, v):
        # Upstream scraped_data ids are often bigint keys
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    model_config = {
        "populate_by_name": True,
    }

class IngestResult(BaseModel):
    project_id: uuid.UUID = Field(..., alias="projectId")
    scraped_data_id: str = Field(..., alias="scrapedDataId")
    total_threads: int = Field(..., alias="totalThreads")
    total_comments: int = Field(..., alias="totalComments")

    model_config = {
        "populate_by_name": True,
    }

# Read schemas
class Comment(BaseModel):
    id: uuid.UUID
    index: int
    pin_number: int = Field(..., alias="pinNumber")
    content: str
    user: str
    has_attachments: bool = Field(False, alias="hasAttachments")
    attachments: List[str] = []

    model_config = {
        "populate_by_name": True,
    }

class Thread(BaseModel):
    id: uuid.UUID
    thread_name: str = Field(..., alias="threadName")
    image_index: Optional[int] = Field(None, alias="imageIndex")
    image_path: str = Field(..., alias="imagePath")
    image_filename: Optional[str] = Field(None, alias="imageFilename")
    has_attachments: bool = Field(False, alias="hasAttachments")
    comments: List[Comment] = []

    model_config = {
        "populate_by_name": True,
    }

class ProjectSummary(BaseModel):
    id: uuid.UUID
    scraped_data_id: str = Field(..., alias="scrapedDataId")
    project_name: str = Field(..., alias="projectName")
    markup_url: Optional[str] = Field(None, alias="markupUrl")
    has_attachments: bool = Field(False, alias="hasAttachments")
    total_threads: int = Field(0, alias="totalThreads")
    total_screenshots: int = Field(0, alias="totalScreenshots")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")

    model_config = {
        "populate_by_name": True,
    }

class ProjectTree(ProjectSummary):
    threads: List[Thread] = []
