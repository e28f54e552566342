"""
Define functions/aliases for dependency injection
"""
from collections.abc import Generator
from typing import Annotated, TypeAlias
from sqlmodel import Session
from fastapi import Depends

from core.config import Settings, get_settings
from core.db import get_engine
from core.ftp import FTPStore, get_ftp_store


# Define db dependency
def get_db() -> Generator[Session, None, None]:
    with Session(get_engine()) as session:
        yield session


def get_app_settings() -> Settings:
    return get_settings()


SettingsDep: TypeAlias = Annotated[Settings, Depends(get_app_settings)]


def get_remote_store(settings: SettingsDep) -> FTPStore | None:
    """FTP mirror client, or None when the mirror is switched off"""
    return get_ftp_store(settings)


SessionDep: TypeAlias = Annotated[Session, Depends(get_db)]
RemoteStoreDep: TypeAlias = Annotated[FTPStore | None, Depends(get_remote_store)]
