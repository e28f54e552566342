"""
File registry: the authoritative list of file metadata records.

Routes and the mirror reconciliation only talk to the FileRegistry
interface, so they work the same against the database table or the
in-process list.
"""

import uuid
from typing import Protocol

from sqlalchemy import delete, or_
from sqlmodel import Session, select, func

from api.files.models import FileBlob, FileRecord, FileSearchParams
from core.config import Settings


class FileRegistry(Protocol):
    """Operations every registry backend provides"""

    def list_all(self) -> list[FileRecord]: ...

    def search(self, params: FileSearchParams) -> tuple[list[FileRecord], int]: ...

    def get(self, file_id: uuid.UUID) -> FileRecord | None: ...

    def stored_names(self) -> set[str]: ...

    def insert(self, record: FileRecord) -> FileRecord: ...

    def delete(self, file_id: uuid.UUID) -> FileRecord | None: ...


def _matches(record: FileRecord, params: FileSearchParams) -> bool:
    if params.search:
        term = params.search.lower()
        if term not in record.stored_name.lower() and term not in record.original_name.lower():
            return False
    if params.category and record.category != params.category:
        return False
    if params.source and record.source != params.source:
        return False
    return True


class MemoryFileRegistry:
    """
    Registry held in a plain list, in insertion order.
    Single process, no locking.
    """

    def __init__(self):
        self._records: list[FileRecord] = []

    def list_all(self) -> list[FileRecord]:
        return list(self._records)

    def search(self, params: FileSearchParams) -> tuple[list[FileRecord], int]:
        filtered = [r for r in self._records if _matches(r, params)]
        filtered.sort(key=lambda r: r.uploaded_at, reverse=True)
        offset = (params.page - 1) * params.limit
        return filtered[offset:offset + params.limit], len(filtered)

    def get(self, file_id: uuid.UUID) -> FileRecord | None:
        return next((r for r in self._records if r.id == file_id), None)

    def stored_names(self) -> set[str]:
        return {r.stored_name for r in self._records}

    def insert(self, record: FileRecord) -> FileRecord:
        if self.get(record.id) is not None:
            raise ValueError(f"File with ID {record.id} already exists")
        self._records.append(record)
        return record

    def delete(self, file_id: uuid.UUID) -> FileRecord | None:
        for index, record in enumerate(self._records):
            if record.id == file_id:
                return self._records.pop(index)
        return None

    def clear(self) -> None:
        self._records.clear()


def _escape_like(term: str) -> str:
    """Make % and _ in a search term match literally"""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlFileRegistry:
    """Registry backed by the files table"""

    def __init__(self, session: Session):
        self.session = session

    def list_all(self) -> list[FileRecord]:
        return list(
            self.session.exec(
                select(FileRecord).order_by(FileRecord.uploaded_at.desc())
            ).all()
        )

    def search(self, params: FileSearchParams) -> tuple[list[FileRecord], int]:
        conditions = []
        if params.search:
            pattern = f"%{_escape_like(params.search.lower())}%"
            conditions.append(
                or_(
                    func.lower(FileRecord.original_name).like(pattern, escape="\\"),
                    func.lower(FileRecord.stored_name).like(pattern, escape="\\"),
                )
            )
        if params.category:
            conditions.append(FileRecord.category == params.category)
        if params.source:
            conditions.append(FileRecord.source == params.source)

        # Get total count
        total_count = self.session.exec(
            select(func.count()).select_from(FileRecord).where(*conditions)
        ).one()

        records = self.session.exec(
            select(FileRecord)
            .where(*conditions)
            .order_by(FileRecord.uploaded_at.desc())
            .limit(params.limit)
            .offset((params.page - 1) * params.limit)
        ).all()
        return list(records), total_count

    def get(self, file_id: uuid.UUID) -> FileRecord | None:
        return self.session.get(FileRecord, file_id)

    def stored_names(self) -> set[str]:
        return set(self.session.exec(select(FileRecord.stored_name)).all())

    def insert(self, record: FileRecord) -> FileRecord:
        self.session.add(record)
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(record)
        return record

    def delete(self, file_id: uuid.UUID) -> FileRecord | None:
        record = self.session.get(FileRecord, file_id)
        if record is None:
            return None
        snapshot = FileRecord(**record.model_dump())
        # The FK cascades too, but not every engine enforces it
        self.session.execute(delete(FileBlob).where(FileBlob.file_id == file_id))
        self.session.delete(record)
        self.session.commit()
        return snapshot


# Process-wide registry used when REGISTRY_BACKEND is "memory"
memory_registry = MemoryFileRegistry()


def total_pages(total: int, limit: int) -> int:
    """Ceiling division, never less than one page"""
    return max(1, (total + limit - 1) // limit)


def build_registry(settings: Settings, session: Session) -> FileRegistry:
    """Pick the registry backend named by REGISTRY_BACKEND"""
    if settings.REGISTRY_BACKEND == "memory":
        return memory_registry
    return SqlFileRegistry(session)
