"""
Services for the Files API
"""

import csv
import hashlib
import io
import re
import secrets
import time
import uuid
from decimal import Decimal, InvalidOperation
from pathlib import Path

from fastapi import HTTPException, UploadFile, status

from api.files.models import (
    DEFAULT_CATEGORY,
    FileDetail,
    FilePublic,
    FileRecord,
    FileSearchParams,
    FilesPublic,
    FileUploadResponse,
    StorageSource,
)
from api.files.registry import FileRegistry, total_pages
from api.files.sources import DatabaseBlobSource
from api.mirror.services import (
    push_to_mirror,
    reconcile_remote_mirror,
    remove_from_mirror,
)
from core.config import Settings
from core.ftp import FTPStore
from core.logger import logger

ALLOWED_MIME_TYPES = [
    "image/png",
    "image/jpeg",
    "image/gif",
    "application/pdf",
    "application/msword",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
]

MAX_STORED_BASENAME = 80
EXPORT_PAGE_SIZE = 50


def sanitize_filename(filename: str) -> str:
    """
    Make an uploaded filename safe to use as the mirror filename.

    Strips path and shell-hostile characters, turns whitespace runs into a
    single underscore, and caps the base name at 80 characters while keeping
    the extension.
    """
    sanitized = re.sub(r'[/\\:*?"<>|]', "", filename)
    sanitized = re.sub(r"\s+", "_", sanitized)
    sanitized = re.sub(r"_+", "_", sanitized)
    stem, extension = _split_extension(sanitized)
    if len(stem) > MAX_STORED_BASENAME:
        sanitized = stem[:MAX_STORED_BASENAME] + extension
    return sanitized


def _split_extension(filename: str) -> tuple[str, str]:
    index = filename.rfind(".")
    if index <= 0:
        return filename, ""
    return filename[:index], filename[index:]


def _local_filename(original_name: str) -> str:
    """Unique on-disk name: <epoch ms>-<random>.<ext>"""
    _, extension = _split_extension(original_name)
    return f"{int(time.time() * 1000)}-{secrets.token_hex(6)}{extension.lower()}"


def _parse_amount(amount: str | None) -> Decimal | None:
    if amount is None or amount.strip() == "":
        return None
    try:
        value = Decimal(amount.strip())
    except InvalidOperation as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid amount: {amount}",
        ) from e
    if not value.is_finite():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid amount: {amount}",
        )
    return value.quantize(Decimal("0.01"))


def validate_uploads(
    files: list[UploadFile] | None, settings: Settings
) -> list[tuple[UploadFile, bytes]]:
    """
    Check every file before anything is written.

    Returns each upload paired with its content.

    Raises:
        HTTPException: 400 when there are no files, too many files, a
        disallowed type, or a file over the size limit
    """
    if not files:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No files uploaded",
        )

    if len(files) > settings.MAX_UPLOAD_FILES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Too many files. At most {settings.MAX_UPLOAD_FILES} files per upload.",
        )

    validated = []
    for upload in files:
        if not upload.filename:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Uploaded file has no filename",
            )
        if upload.content_type not in ALLOWED_MIME_TYPES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid file type. Only PNG, JPG, GIF, DOC, XLS, and PDF allowed.",
            )
        # Read one byte past the limit so oversized files are detected without reading them whole
        content = upload.file.read(settings.MAX_UPLOAD_SIZE_BYTES + 1)
        if len(content) > settings.MAX_UPLOAD_SIZE_BYTES:
            limit_mb = settings.MAX_UPLOAD_SIZE_BYTES // (1024 * 1024)
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"File {upload.filename} exceeds the {limit_mb} MB limit",
            )
        validated.append((upload, content))
    return validated


def _discard_copies(
    local_path: Path, ftp_path: str | None, remote_store: FTPStore | None
) -> None:
    """Best-effort removal of an upload's local and mirrored bytes"""
    try:
        local_path.unlink(missing_ok=True)
    except OSError as e:
        logger.error("Failed to delete local file %s: %s", local_path, e)
    if ftp_path:
        remove_from_mirror(remote_store, ftp_path)


def _roll_back_batch(
    registry: FileRegistry, records: list[FileRecord], remote_store: FTPStore | None
) -> None:
    """Undo the files of a batch that were registered before a later file failed"""
    for record in records:
        registry.delete(record.id)
        _discard_copies(Path(record.local_path), record.ftp_path, remote_store)
    if records:
        logger.warning("Rolled back %d file(s) from a failed upload", len(records))


def upload_files(
    *,
    registry: FileRegistry,
    settings: Settings,
    files: list[UploadFile] | None,
    blob_source: DatabaseBlobSource | None = None,
    remote_store: FTPStore | None = None,
    category: str | None = None,
    amount: str | None = None,
    uploader: str | None = None,
) -> FileUploadResponse:
    """
    Validate, store, and register a batch of uploads.

    Every file is written to UPLOAD_DIR, stored as a blob when STORE_BLOBS
    is on, and pushed to the FTP mirror when one is configured.
    """
    validated = validate_uploads(files, settings)
    parsed_amount = _parse_amount(amount)
    category = (category or "").strip() or DEFAULT_CATEGORY
    store_blob = settings.STORE_BLOBS and blob_source is not None

    upload_dir = Path(settings.UPLOAD_DIR)
    try:
        upload_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error("Cannot create upload directory %s: %s", upload_dir, e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Upload failed",
        ) from e

    records: list[FileRecord] = []
    pushed = False
    for upload, content in validated:
        local_path = upload_dir / _local_filename(upload.filename)
        try:
            local_path.write_bytes(content)
        except OSError as e:
            logger.error("Failed to write %s: %s", local_path, e)
            _roll_back_batch(registry, records, remote_store)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Upload failed",
            ) from e

        stored_name = sanitize_filename(upload.filename)
        record = FileRecord(
            id=uuid.uuid4(),
            original_name=upload.filename,
            stored_name=stored_name,
            mime_type=upload.content_type,
            size=len(content),
            category=category,
            amount=parsed_amount,
            source=StorageSource.DB if store_blob else StorageSource.LOCAL,
            local_path=str(local_path),
            sha256=hashlib.sha256(content).hexdigest(),
            uploader=uploader,
            is_processed=True,
        )

        ftp_path = push_to_mirror(
            remote_store, str(local_path), stored_name, settings.FTP_UPLOADS_DIR
        )
        if ftp_path:
            pushed = True
            record.ftp_path = ftp_path
            if not store_blob:
                record.source = StorageSource.FTP
        logger.info(
            "File %s - Local: ok FTP: %s",
            upload.filename,
            "ok" if ftp_path else "skipped" if remote_store is None else "failed",
        )

        try:
            record = registry.insert(record)
            if store_blob:
                blob_source.save(record.id, content)
        except Exception as e:
            logger.error("Failed to register %s: %s", upload.filename, e)
            if registry.get(record.id) is not None:
                registry.delete(record.id)
            _discard_copies(local_path, ftp_path, remote_store)
            _roll_back_batch(registry, records, remote_store)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Upload failed",
            ) from e
        records.append(record)

    if pushed:
        reconcile_remote_mirror(registry, remote_store, settings.FTP_UPLOADS_DIR)

    return FileUploadResponse(files=[FilePublic.from_record(r) for r in records])


def list_files(registry: FileRegistry, params: FileSearchParams) -> FilesPublic:
    """ Get a filtered, paginated page of files, newest first """
    records, total = registry.search(params)
    return FilesPublic(
        files=[FilePublic.from_record(r) for r in records],
        total=total,
        page=params.page,
        limit=params.limit,
        total_pages=total_pages(total, params.limit),
    )


def get_file(registry: FileRegistry, file_id: uuid.UUID) -> FileDetail:
    """ Get a specific file """
    record = registry.get(file_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="File not found",
        )
    return FileDetail(file=FilePublic.from_record(record))


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.resolve().relative_to(root.resolve())
        return True
    except ValueError:
        return False


def delete_file(
    *,
    registry: FileRegistry,
    settings: Settings,
    file_id: uuid.UUID,
    remote_store: FTPStore | None = None,
) -> dict:
    """
    Remove a file from the registry, then best-effort remove its bytes from
    local disk and the FTP mirror. Blob content goes with the record.
    """
    record = registry.delete(file_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="File not found",
        )

    if record.local_path:
        local_path = Path(record.local_path)
        if not _is_within(local_path, Path(settings.UPLOAD_DIR)):
            logger.warning("Refusing to delete %s outside the upload directory", local_path)
        elif local_path.exists():
            try:
                local_path.unlink()
            except OSError as e:
                logger.error("Failed to delete local file %s: %s", local_path, e)

    if record.ftp_path:
        remove_from_mirror(remote_store, record.ftp_path)

    logger.info("Deleted file %s (%s)", file_id, record.stored_name)
    return {"message": "File deleted successfully"}


def export_files_csv(
    registry: FileRegistry,
    base_url: str,
    search: str | None = None,
    category: str | None = None,
) -> str:
    """
    Render every matching file as CSV rows of name and view URL.
    """
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(["Destination File Name", "Destination File Url"])

    base_url = base_url.rstrip("/")
    page = 1
    while True:
        params = FileSearchParams(
            page=page, limit=EXPORT_PAGE_SIZE, search=search, category=category
        )
        records, total = registry.search(params)
        for record in records:
            writer.writerow(
                [record.stored_name, f"{base_url}/api/files/{record.id}/view"]
            )
        if page >= total_pages(total, EXPORT_PAGE_SIZE):
            break
        page += 1

    return output.getvalue()
