"""
Models for the Files API
"""

from typing import List
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from sqlalchemy import BigInteger, Text
from sqlmodel import SQLModel, Field
from pydantic import ConfigDict
from pydantic.alias_generators import to_camel

DEFAULT_CATEGORY = "uncategorized"


class StorageSource(str, Enum):
    """Which backing store is authoritative for a file's bytes"""

    LOCAL = "local"
    FTP = "ftp"
    DB = "db"


class FileRecord(SQLModel, table=True):
    """Metadata for one stored file"""

    __tablename__ = "files"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    original_name: str = Field(max_length=1024)
    stored_name: str = Field(index=True, max_length=1024)  # Sanitized name, also the FTP filename
    mime_type: str = Field(max_length=255)
    size: int = Field(default=0, sa_type=BigInteger)  # Size in bytes
    category: str = Field(default=DEFAULT_CATEGORY, index=True, max_length=100)
    amount: Decimal | None = Field(default=None, max_digits=12, decimal_places=2)
    uploaded_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), index=True
    )

    # Storage locators
    source: StorageSource = Field(default=StorageSource.LOCAL, index=True)
    local_path: str | None = Field(default=None, max_length=1024)
    ftp_path: str | None = Field(default=None, max_length=1024)

    sha256: str | None = Field(default=None, max_length=64)
    uploader: str | None = Field(default=None, max_length=100)  # Username of the session
    is_processed: bool = Field(default=False)

    model_config = ConfigDict(from_attributes=True)


class FileBlob(SQLModel, table=True):
    """Base64 encoded file content, removed together with its record"""

    __tablename__ = "file_blobs"

    file_id: uuid.UUID = Field(
        foreign_key="files.id", primary_key=True, ondelete="CASCADE"
    )
    content: str = Field(sa_type=Text)


class FilePublic(SQLModel):
    """Public file representation"""

    id: uuid.UUID
    name: str
    original_name: str
    size: int
    mime_type: str
    category: str
    amount: Decimal | None = None
    uploaded_at: datetime
    source: StorageSource
    is_processed: bool
    local_path: str | None = None
    ftp_path: str | None = None

    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @classmethod
    def from_record(cls, record: FileRecord) -> "FilePublic":
        return cls(
            id=record.id,
            name=record.stored_name,
            original_name=record.original_name,
            size=record.size,
            mime_type=record.mime_type,
            category=record.category,
            amount=record.amount,
            uploaded_at=record.uploaded_at,
            source=record.source,
            is_processed=record.is_processed,
            local_path=record.local_path,
            ftp_path=record.ftp_path,
        )


class FilesPublic(SQLModel):
    """Paginated file listing"""

    files: List[FilePublic]
    total: int
    page: int
    limit: int
    total_pages: int

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FileDetail(SQLModel):
    """Single file lookup"""

    file: FilePublic


class FileUploadResponse(SQLModel):
    """Response model for file upload"""

    files: List[FilePublic]


class FileSearchParams(SQLModel):
    """File filtering and paging options"""

    page: int = 1
    limit: int = 10
    search: str | None = None  # Search in stored/original name
    category: str | None = None
    source: StorageSource | None = None

    model_config = ConfigDict(extra="forbid")
