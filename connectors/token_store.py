"""
Token store — durable storage for the deployment's single Dropbox credential.

Three backends share one async contract (``save`` / ``load`` / ``clear``):

  • ``FileTokenStore``      JSON document on disk (default)
  • ``DatabaseTokenStore``  one row via async SQLAlchemy
  • ``MemoryTokenStore``    process-local, for tests / ephemeral runs

Callers (token manager, prober) only ever see ``TokenStore``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from config.settings import Settings
from connectors.encryption import TokenCipher
from database.models import StoredCredential
from database.session import create_engine_for, create_session_factory, create_tables
from utils.errors import StorageError
from utils.schemas import Credential

logger = logging.getLogger(__name__)

_DEFAULT_SCOPE = "default"


class TokenStore(ABC):
    """Persists exactly one ``Credential``."""

    @abstractmethod
    async def save(self, credential: Credential) -> None:
        """Overwrite the stored credential. Raises ``StorageError``."""
        ...

    @abstractmethod
    async def load(self) -> Optional[Credential]:
        """Return the stored credential, or ``None`` if never set / cleared."""
        ...

    @abstractmethod
    async def clear(self) -> None:
        """Remove the credential. Idempotent."""
        ...

    async def close(self) -> None:
        """Release backend resources (no-op by default)."""
        return None


class MemoryTokenStore(TokenStore):
    def __init__(self) -> None:
        self._credential: Optional[Credential] = None

    async def save(self, credential: Credential) -> None:
        self._credential = credential.model_copy()

    async def load(self) -> Optional[Credential]:
        return self._credential.model_copy() if self._credential else None

    async def clear(self) -> None:
        self._credential = None


class FileTokenStore(TokenStore):
    """JSON file store; token fields are encrypted when the cipher has a key.

    Disk I/O runs in a worker thread so the event loop never blocks on it.
    """

    def __init__(self, path: str | Path, cipher: Optional[TokenCipher] = None) -> None:
        self._path = Path(path)
        self._cipher = cipher or TokenCipher()

    @property
    def path(self) -> Path:
        return self._path

    async def save(self, credential: Credential) -> None:
        document = _encrypt_fields(credential.model_dump(mode="json"), self._cipher)
        await asyncio.to_thread(self._write_document, document)
        logger.debug("Credential saved to %s", self._path)

    async def load(self) -> Optional[Credential]:
        return await asyncio.to_thread(self._read_credential)

    async def clear(self) -> None:
        await asyncio.to_thread(self._remove_file)

    # ── blocking helpers (worker thread) ────────────────────────────────

    def _write_document(self, document: Dict[str, Any]) -> None:
        tmp_name: Optional[str] = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=".token-", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, indent=2)
            os.replace(tmp_name, self._path)
        except OSError as exc:
            _discard(tmp_name)
            raise StorageError(f"Could not write credential file {self._path}: {exc}") from exc

    def _read_credential(self) -> Optional[Credential]:
        if not self._path.exists():
            return None
        try:
            document = json.loads(self._path.read_text(encoding="utf-8"))
            return Credential.model_validate(_decrypt_fields(document, self._cipher))
        except (OSError, ValueError, ValidationError) as exc:
            logger.error("Credential file %s is unreadable or corrupt: %s", self._path, exc)
            return None

    def _remove_file(self) -> None:
        try:
            self._path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Could not remove credential file {self._path}: {exc}") from exc


class DatabaseTokenStore(TokenStore):
    """Single-row store in the ``dropbox_credentials`` table."""

    def __init__(self, database_url: str, cipher: Optional[TokenCipher] = None) -> None:
        self._engine = create_engine_for(database_url)
        self._session_factory = create_session_factory(self._engine)
        self._cipher = cipher or TokenCipher()
        self._ready = False

    async def _ensure_schema(self) -> None:
        if not self._ready:
            await create_tables(self._engine)
            self._ready = True

    async def save(self, credential: Credential) -> None:
        try:
            await self._ensure_schema()
            async with self._session_factory() as session:
                row = await session.get(StoredCredential, _DEFAULT_SCOPE)
                if row is None:
                    row = StoredCredential(scope=_DEFAULT_SCOPE)
                    session.add(row)
                row.access_token = self._cipher.encrypt(credential.access_token)
                row.refresh_token = self._cipher.encrypt(credential.refresh_token)
                row.expires_at = credential.expires_at
                row.last_refresh = credential.last_refresh
                await session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Could not save credential: {exc}") from exc

    async def load(self) -> Optional[Credential]:
        try:
            await self._ensure_schema()
            async with self._session_factory() as session:
                result = await session.execute(
                    select(StoredCredential).where(StoredCredential.scope == _DEFAULT_SCOPE)
                )
                row = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StorageError(f"Could not load credential: {exc}") from exc

        if row is None:
            return None
        return Credential(
            access_token=self._cipher.decrypt(row.access_token),
            refresh_token=self._cipher.decrypt(row.refresh_token),
            expires_at=_as_utc(row.expires_at),
            last_refresh=_as_utc(row.last_refresh),
        )

    async def clear(self) -> None:
        try:
            await self._ensure_schema()
            async with self._session_factory() as session:
                await session.execute(
                    delete(StoredCredential).where(StoredCredential.scope == _DEFAULT_SCOPE)
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Could not clear credential: {exc}") from exc

    async def close(self) -> None:
        await self._engine.dispose()


def build_token_store(settings: Settings) -> TokenStore:
    """Pick the backend named by ``settings.token_store_backend``."""
    backend = settings.token_store_backend.lower()
    cipher = TokenCipher(settings.token_encryption_key)

    if backend == "memory":
        return MemoryTokenStore()
    if backend == "database":
        _ensure_sqlite_dir(settings.database_url)
        return DatabaseTokenStore(settings.database_url, cipher)
    if backend == "file":
        return FileTokenStore(settings.token_store_path, cipher)
    raise ValueError(f"Unknown token_store_backend '{settings.token_store_backend}'")


# ── helpers ────────────────────────────────────────────────────────────────────


def _encrypt_fields(document: Dict[str, Any], cipher: TokenCipher) -> Dict[str, Any]:
    document["access_token"] = cipher.encrypt(document["access_token"])
    document["refresh_token"] = cipher.encrypt(document.get("refresh_token"))
    document["encrypted"] = cipher.enabled
    return document


def _decrypt_fields(document: Dict[str, Any], cipher: TokenCipher) -> Dict[str, Any]:
    document = dict(document)
    document.pop("encrypted", None)
    document["access_token"] = cipher.decrypt(document.get("access_token"))
    document["refresh_token"] = cipher.decrypt(document.get("refresh_token"))
    return document


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _ensure_sqlite_dir(database_url: str) -> None:
    marker = ":///"
    if database_url.startswith("sqlite") and marker in database_url:
        db_path = database_url.split(marker, 1)[1]
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)


def _discard(tmp_name: Optional[str]) -> None:
    if tmp_name is None:
        return
    try:
        Path(tmp_name).unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Could not remove temporary file %s: %s", tmp_name, exc)
