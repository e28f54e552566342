"""
Content sources for file retrieval.

Each source either opens a byte stream for a record or reports that it
does not hold the content. retrieve_content() walks the sources in order
and returns the first hit: database blob, then local disk, then the FTP
mirror.
"""

import base64
import ftplib
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Protocol
from urllib.parse import quote

from sqlmodel import Session

from api.files.models import FileBlob, FileRecord
from api.files.registry import FileRegistry
from core.ftp import FTPStore
from core.logger import logger

CHUNK_SIZE = 64 * 1024


class FileRecordNotFound(Exception):
    """No registry entry for the requested id"""


class FileContentUnavailable(Exception):
    """Registry entry exists but no source could produce its bytes"""


@dataclass
class FileContent:
    """An open byte stream plus the headers needed to serve it"""
    stream: Iterator[bytes]
    media_type: str
    filename: str
    source: str

    @property
    def headers(self) -> dict[str, str]:
        return {"Content-Disposition": content_disposition(self.filename)}


class ContentSource(Protocol):
    name: str

    def open(self, record: FileRecord) -> Iterator[bytes] | None: ...


def content_disposition(filename: str, disposition: str = "inline") -> str:
    """Build a Content-Disposition value that survives non-ASCII names"""
    fallback = filename.encode("ascii", "replace").decode("ascii").replace('"', "")
    return f"{disposition}; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


def _iter_local_file(path: Path) -> Iterator[bytes]:
    with path.open("rb") as fh:
        while True:
            chunk = fh.read(CHUNK_SIZE)
            if not chunk:
                break
            yield chunk


class DatabaseBlobSource:
    """Base64 blobs in the file_blobs table"""

    name = "db"

    def __init__(self, session: Session):
        self.session = session

    def save(self, file_id: uuid.UUID, content: bytes) -> None:
        encoded = base64.b64encode(content).decode("ascii")
        blob = self.session.get(FileBlob, file_id)
        if blob is None:
            blob = FileBlob(file_id=file_id, content=encoded)
        else:
            blob.content = encoded
        self.session.add(blob)
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def open(self, record: FileRecord) -> Iterator[bytes] | None:
        blob = self.session.get(FileBlob, record.id)
        if blob is None:
            return None
        return iter([base64.b64decode(blob.content)])


class LocalDiskSource:
    name = "local"

    def open(self, record: FileRecord) -> Iterator[bytes] | None:
        if not record.local_path:
            return None
        path = Path(record.local_path)
        if not path.is_file():
            logger.debug("Local copy missing for %s: %s", record.id, path)
            return None
        return _iter_local_file(path)


class RemoteMirrorSource:
    """Proxy the bytes from the FTP mirror"""

    name = "ftp"

    def __init__(self, store: FTPStore | None):
        self.store = store

    def open(self, record: FileRecord) -> Iterator[bytes] | None:
        if self.store is None or not record.ftp_path:
            return None
        try:
            return self.store.open_read(record.ftp_path, chunk_size=CHUNK_SIZE)
        except ftplib.all_errors as e:
            logger.error("FTP stream error for %s: %s", record.ftp_path, e)
            return None


def retrieve_content(
    registry: FileRegistry,
    sources: list[ContentSource],
    file_id: uuid.UUID,
) -> FileContent:
    """
    Find a record and open its content from the first source that has it.

    Raises:
        FileRecordNotFound: the id is not in the registry
        FileContentUnavailable: no source holds the bytes
    """
    record = registry.get(file_id)
    if record is None:
        logger.info("View requested for unknown file %s", file_id)
        raise FileRecordNotFound(str(file_id))

    for source in sources:
        stream = source.open(record)
        if stream is not None:
            logger.debug("Serving %s from %s", file_id, source.name)
            return FileContent(
                stream=stream,
                media_type=record.mime_type,
                filename=record.original_name,
                source=source.name,
            )

    logger.warning(
        "File %s (%s) is registered but no backend holds its content",
        file_id,
        record.stored_name,
    )
    raise FileContentUnavailable(str(file_id))
