"""
File dependencies for dependency injection
"""

from typing import Annotated, TypeAlias
from fastapi import Depends

from core.deps import SessionDep, SettingsDep, RemoteStoreDep
from api.files.registry import FileRegistry, build_registry
from api.files.sources import (
    ContentSource,
    DatabaseBlobSource,
    LocalDiskSource,
    RemoteMirrorSource,
)


def get_registry(session: SessionDep, settings: SettingsDep) -> FileRegistry:
    return build_registry(settings, session)


def get_blob_source(
    session: SessionDep, settings: SettingsDep
) -> DatabaseBlobSource | None:
    """Blob storage only exists alongside the database registry"""
    if settings.REGISTRY_BACKEND != "database":
        return None
    return DatabaseBlobSource(session)


def get_content_sources(
    blob_source: Annotated[DatabaseBlobSource | None, Depends(get_blob_source)],
    remote_store: RemoteStoreDep,
) -> list[ContentSource]:
    """Sources in precedence order"""
    sources: list[ContentSource] = []
    if blob_source is not None:
        sources.append(blob_source)
    sources.append(LocalDiskSource())
    sources.append(RemoteMirrorSource(remote_store))
    return sources


RegistryDep: TypeAlias = Annotated[FileRegistry, Depends(get_registry)]
BlobSourceDep: TypeAlias = Annotated[DatabaseBlobSource | None, Depends(get_blob_source)]
ContentSourcesDep: TypeAlias = Annotated[list[ContentSource], Depends(get_content_sources)]
