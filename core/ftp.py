"""
FTP mirror configuration and client
"""

import ftplib
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator

from core.config import Settings, get_settings
from core.logger import logger


@dataclass
class RemoteEntry:
    """One entry of a remote directory listing"""
    name: str
    is_dir: bool
    size: int | None = None
    modified: datetime | None = None


def _parse_mlsd_time(value: str | None) -> datetime | None:
    """Parse an MLSD 'modify' fact (YYYYMMDDHHMMSS[.sss], always UTC)"""
    if not value:
        return None
    try:
        return datetime.strptime(value[:14], "%Y%m%d%H%M%S").replace(
            tzinfo=timezone.utc
        )
    except ValueError:
        return None


def parse_list_lines(lines: list[str]) -> list[RemoteEntry]:
    """
    Parse unix-style LIST output for servers without MLSD support.
    Modification times in this format are too coarse to trust, so they are dropped.
    Symlink entries are skipped.
    """
    entries = []
    for line in lines:
        parts = line.split(maxsplit=8)
        if len(parts) < 9 or parts[0].startswith("l"):
            continue
        try:
            size = int(parts[4])
        except ValueError:
            continue
        entries.append(
            RemoteEntry(
                name=parts[8],
                is_dir=parts[0].startswith("d"),
                size=size,
            )
        )
    return entries


class FTPStore:
    """
    Thin wrapper around ftplib. Every call opens its own connection and
    closes it before returning; there is no pooling and no retry.
    """

    def __init__(
        self,
        host: str,
        port: int = 21,
        user: str | None = None,
        password: str | None = None,
        timeout: float | None = None,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.timeout = timeout

    def _connect(self) -> ftplib.FTP:
        ftp = ftplib.FTP()
        if self.timeout:
            ftp.connect(host=self.host, port=self.port, timeout=self.timeout)
        else:
            ftp.connect(host=self.host, port=self.port)
        try:
            if self.user:
                ftp.login(user=self.user, passwd=self.password or "")
            else:
                ftp.login()
        except ftplib.all_errors:
            ftp.close()
            raise
        return ftp

    @staticmethod
    def _close(ftp: ftplib.FTP) -> None:
        try:
            ftp.quit()
        except ftplib.all_errors:
            ftp.close()

    def check(self) -> bool:
        """Return True if a login succeeds"""
        try:
            ftp = self._connect()
        except ftplib.all_errors as e:
            logger.error("FTP connection failed: %s", e)
            return False
        self._close(ftp)
        logger.info("FTP connection successful")
        return True

    def ensure_dir(self, path: str) -> bool:
        """Create path (and parents) on the server, ignoring ones that exist"""
        try:
            ftp = self._connect()
        except ftplib.all_errors as e:
            logger.error("FTP connection error: %s", e)
            return False
        try:
            current = ""
            for part in path.strip("/").split("/"):
                if not part:
                    continue
                current = f"{current}/{part}" if current else part
                try:
                    ftp.mkd(current)
                except ftplib.error_perm:
                    # 550: already exists
                    pass
            return True
        except ftplib.all_errors as e:
            logger.error("Failed to create FTP dir %s: %s", path, e)
            return False
        finally:
            self._close(ftp)

    def list_dir(self, path: str) -> list[RemoteEntry]:
        """
        List a directory. Errors propagate so callers can decide how to degrade.
        """
        ftp = self._connect()
        try:
            try:
                entries = []
                for name, facts in ftp.mlsd(path=path, facts=["type", "size", "modify"]):
                    entry_type = facts.get("type", "file")
                    if entry_type in ("cdir", "pdir") or name in (".", ".."):
                        continue
                    size = facts.get("size")
                    entries.append(
                        RemoteEntry(
                            name=name,
                            is_dir=entry_type == "dir",
                            size=int(size) if size is not None else None,
                            modified=_parse_mlsd_time(facts.get("modify")),
                        )
                    )
                return entries
            except ftplib.error_perm:
                # Fallback to LIST if MLSD is not supported
                lines: list[str] = []
                ftp.dir(path, lines.append)
                return parse_list_lines(lines)
        finally:
            self._close(ftp)

    def put(self, local_path: str, remote_path: str) -> bool:
        """Upload a local file, returning False on any failure"""
        try:
            ftp = self._connect()
        except ftplib.all_errors as e:
            logger.error("FTP connection error: %s", e)
            return False
        try:
            with open(local_path, "rb") as file_data:
                ftp.storbinary(f"STOR {remote_path}", file_data)
            logger.info("File uploaded to FTP: %s", remote_path)
            return True
        except ftplib.all_errors as e:
            logger.error("FTP upload error for %s: %s", remote_path, e)
            return False
        finally:
            self._close(ftp)

    def open_read(self, remote_path: str, chunk_size: int = 64 * 1024) -> Iterator[bytes]:
        """
        Start a binary RETR and return an iterator over the data.

        The transfer is opened before this returns, so a missing file raises
        here rather than half way through a response. The control connection
        is closed when the iterator is exhausted, fails, or is closed.
        """
        ftp = self._connect()
        try:
            ftp.voidcmd("TYPE I")
            conn = ftp.transfercmd(f"RETR {remote_path}")
        except ftplib.all_errors:
            self._close(ftp)
            raise

        def stream() -> Iterator[bytes]:
            try:
                with conn:
                    while True:
                        data = conn.recv(chunk_size)
                        if not data:
                            break
                        yield data
                ftp.voidresp()
            finally:
                self._close(ftp)

        return stream()

    def delete(self, remote_path: str) -> bool:
        try:
            ftp = self._connect()
        except ftplib.all_errors as e:
            logger.error("FTP delete connection error: %s", e)
            return False
        try:
            ftp.delete(remote_path)
            logger.info("Deleted from FTP: %s", remote_path)
            return True
        except ftplib.all_errors as e:
            logger.error("Failed to delete FTP file %s: %s", remote_path, e)
            return False
        finally:
            self._close(ftp)


def get_ftp_store(settings: Settings | None = None) -> FTPStore | None:
    """Build the FTP store from settings, or None if the mirror is disabled"""
    settings = settings or get_settings()
    if not settings.ftp_configured:
        return None
    return FTPStore(
        host=settings.FTP_HOST,
        port=settings.FTP_PORT,
        user=settings.FTP_USER,
        password=settings.FTP_PASSWORD,
        timeout=settings.FTP_TIMEOUT,
    )
