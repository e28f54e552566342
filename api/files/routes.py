"""
Routes/endpoints for the Files API

HTTP   URI                          Action
----   ---                          ------
POST   /api/files/upload            Upload up to 10 files
GET    /api/files                   Paginated, searchable list of files
GET    /api/files/export            CSV of file names and view links
GET    /api/files/[id]              Metadata for a specific file
GET    /api/files/[id]/view         File content, served inline
DELETE /api/files/[id]              Delete a file
"""

import uuid

from fastapi import APIRouter, File, Form, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import Response, StreamingResponse

from api.auth.deps import CurrentUser
from api.files import services
from api.files.deps import BlobSourceDep, ContentSourcesDep, RegistryDep
from api.files.models import (
    DEFAULT_CATEGORY,
    FileDetail,
    FileSearchParams,
    FilesPublic,
    FileUploadResponse,
    StorageSource,
)
from api.files.sources import (
    FileContentUnavailable,
    FileRecordNotFound,
    content_disposition,
    retrieve_content,
)
from core.deps import RemoteStoreDep, SettingsDep
from core.models import MessageResponse

router = APIRouter(prefix="/files", tags=["File Endpoints"])


@router.post(
    "/upload",
    response_model=FileUploadResponse,
    tags=["File Endpoints"],
)
def upload_files(
    current_user: CurrentUser,
    registry: RegistryDep,
    settings: SettingsDep,
    blob_source: BlobSourceDep,
    remote_store: RemoteStoreDep,
    files: list[UploadFile] | None = File(None, description="Files to upload"),
    category: str = Form(DEFAULT_CATEGORY),
    amount: str | None = Form(None),
) -> FileUploadResponse:
    """
    Upload one or more files.

    Every file must be an allowed type (PNG, JPG, GIF, PDF, Word, Excel) and
    no larger than the configured limit; otherwise nothing is stored.
    """
    return services.upload_files(
        registry=registry,
        settings=settings,
        files=files,
        blob_source=blob_source,
        remote_store=remote_store,
        category=category,
        amount=amount,
        uploader=current_user.username,
    )


@router.get(
    "",
    response_model=FilesPublic,
    status_code=status.HTTP_200_OK,
    tags=["File Endpoints"],
)
def list_files(
    current_user: CurrentUser,
    registry: RegistryDep,
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    limit: int = Query(10, ge=1, le=100, description="Number of items per page"),
    search: str | None = Query(None, description="Case-insensitive name search"),
    category: str | None = Query(None, description="Only files in this category"),
    source: StorageSource | None = Query(None, description="Only files held by this backend"),
) -> FilesPublic:
    """
    Retrieve a page of files, newest first.
    """
    params = FileSearchParams(
        page=page, limit=limit, search=search or None, category=category or None, source=source
    )
    return services.list_files(registry, params)


@router.get("/export", tags=["File Endpoints"])
def export_files(
    current_user: CurrentUser,
    registry: RegistryDep,
    request: Request,
    search: str | None = Query(None, description="Case-insensitive name search"),
    category: str | None = Query(None, description="Only files in this category"),
) -> Response:
    """
    Download every matching file's name and view link as CSV.
    """
    content = services.export_files_csv(
        registry,
        base_url=str(request.base_url),
        search=search or None,
        category=category or None,
    )
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": content_disposition("AllFiles.csv", "attachment")},
    )


@router.get(
    "/{file_id}",
    response_model=FileDetail,
    status_code=status.HTTP_200_OK,
    tags=["File Endpoints"],
)
def get_file(
    current_user: CurrentUser, registry: RegistryDep, file_id: uuid.UUID
) -> FileDetail:
    """
    Retrieve a specific file by ID.
    """
    return services.get_file(registry, file_id)


@router.get("/{file_id}/view", tags=["File Endpoints"])
def view_file(
    registry: RegistryDep, sources: ContentSourcesDep, file_id: uuid.UUID
) -> StreamingResponse:
    """
    Stream a file inline.

    Open to anyone holding the link so copied links work in a new window.
    Content comes from the database blob, then local disk, then the FTP mirror.
    """
    try:
        content = retrieve_content(registry, sources, file_id)
    except FileRecordNotFound as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="File not found",
        ) from e
    except FileContentUnavailable as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="File content not available",
        ) from e

    return StreamingResponse(
        content.stream,
        media_type=content.media_type,
        headers=content.headers,
    )


@router.delete(
    "/{file_id}",
    response_model=MessageResponse,
    tags=["File Endpoints"],
)
def delete_file(
    current_user: CurrentUser,
    registry: RegistryDep,
    settings: SettingsDep,
    remote_store: RemoteStoreDep,
    file_id: uuid.UUID,
):
    """
    Delete a file and its stored copies.
    """
    return services.delete_file(
        registry=registry,
        settings=settings,
        file_id=file_id,
        remote_store=remote_store,
    )
