"""
JSON file storage.

Every record lives in its own pretty-printed JSON file under a per-kind
directory. Reads take the record's shared lock, writes and deletes take it
exclusively, and writes land through a temp file so readers never see a
partial record.
"""

import os
import tempfile
from pathlib import Path
from typing import Generic, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from ..errors import NotFoundError, StorageError
from .locks import KeyedRWLock
from .models import Conversation, MemoryItem, Skill, utcnow

logger = structlog.get_logger()

RecordT = TypeVar("RecordT", bound=BaseModel)


class RecordStore(Generic[RecordT]):
    """CRUD over one directory of JSON records keyed by ``id``."""

    kind = "record"

    def __init__(self, directory: Path, model: type[RecordT]):
        self.directory = directory
        self.model = model
        self._locks = KeyedRWLock()
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"creating storage directory {directory}: {e}") from e

    def _path(self, record_id: str) -> Path:
        if not record_id or record_id in (".", "..") or "/" in record_id or "\\" in record_id:
            raise StorageError(f"invalid {self.kind} id: {record_id!r}")
        return self.directory / f"{record_id}.json"

    def _read(self, record_id: str, path: Path) -> RecordT:
        try:
            data = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise NotFoundError(self.kind, record_id) from None
        except OSError as e:
            raise StorageError(f"reading {self.kind} {record_id}: {e}") from e

        try:
            return self.model.model_validate_json(data)
        except ValidationError as e:
            raise StorageError(f"decoding {self.kind} {record_id}: {e}") from e

    def save(self, record: RecordT) -> None:
        record_id = getattr(record, "id")
        path = self._path(record_id)
        data = record.model_dump_json(indent=2)

        with self._locks(record_id).write():
            fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=f".{record_id}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(data)
                os.replace(tmp, path)
            except OSError as e:
                Path(tmp).unlink(missing_ok=True)
                raise StorageError(f"writing {self.kind} {record_id}: {e}") from e

        logger.debug(f"{self.kind} saved", id=record_id)

    def load(self, record_id: str) -> RecordT:
        path = self._path(record_id)
        with self._locks(record_id).read():
            return self._read(record_id, path)

    def exists(self, record_id: str) -> bool:
        path = self._path(record_id)
        with self._locks(record_id).read():
            return path.is_file()

    def list_ids(self) -> list[str]:
        try:
            return sorted(
                p.stem for p in self.directory.glob("*.json")
                if p.is_file() and not p.name.startswith(".")
            )
        except OSError as e:
            raise StorageError(f"listing {self.kind} records: {e}") from e

    def load_all(self) -> list[RecordT]:
        """Load every readable record; broken files are skipped."""
        records = []
        for record_id in self.list_ids():
            try:
                records.append(self.load(record_id))
            except NotFoundError:
                continue
            except StorageError as e:
                logger.warning(f"skipping unreadable {self.kind}", id=record_id, error=str(e))
        logger.debug(f"{self.kind} records loaded", count=len(records))
        return records

    def delete(self, record_id: str) -> None:
        path = self._path(record_id)
        with self._locks(record_id).write():
            try:
                path.unlink()
            except FileNotFoundError:
                raise NotFoundError(self.kind, record_id) from None
            except OSError as e:
                raise StorageError(f"deleting {self.kind} {record_id}: {e}") from e

        logger.info(f"{self.kind} deleted", id=record_id)


class ConversationStore(RecordStore[Conversation]):
    kind = "conversation"

    def __init__(self, directory: Path):
        super().__init__(directory, Conversation)

    def save(self, record: Conversation) -> None:
        record.updated_at = utcnow()
        super().save(record)


class MemoryStore(RecordStore[MemoryItem]):
    kind = "memory"

    def __init__(self, directory: Path):
        super().__init__(directory, MemoryItem)


class SkillStore(RecordStore[Skill]):
    kind = "skill"

    def __init__(self, directory: Path):
        super().__init__(directory, Skill)


class JSONStore:
    """The three record stores rooted in one working directory."""

    def __init__(self, base_dir: str | Path):
        self.base_dir = Path(base_dir).expanduser()
        self.conversations = ConversationStore(self.base_dir / "messages")
        self.memories = MemoryStore(self.base_dir / "memory")
        self.skills = SkillStore(self.base_dir / "skills")
        logger.debug("storage initialized", path=str(self.base_dir))
