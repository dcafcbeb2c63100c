# api/attachments/models.py
"""
Pydantic models for attachment endpoints.
"""
from pydantic import BaseModel, ConfigDict


class AttachmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    file_name: str
    file_path: str
    url: str
    file_size: int = 0
    file_type: str | None = None


class AttachmentUploadResult(BaseModel):
    """Files that could not be stored are listed by name in `failed`."""
    uploaded: list[AttachmentRead]
    failed: list[str]
