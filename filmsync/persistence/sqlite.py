"""SQLite-backed blob store built on peewee."""

from __future__ import annotations

import datetime as _dt
import logging

import peewee

logger = logging.getLogger(__name__)

BLOB_TABLE_NAME = "local_blob"


def _utcnow() -> _dt.datetime:
    return _dt.datetime.now(_dt.UTC)


class BaseModel(peewee.Model):
    class Meta:
        legacy_table_names = False


class LocalBlob(BaseModel):
    key = peewee.TextField(primary_key=True)
    data = peewee.BlobField()
    updated_at = peewee.DateTimeField(default=_utcnow)

    class Meta:
        table_name = BLOB_TABLE_NAME


def bind_blob_model(db: peewee.Database) -> type[LocalBlob]:
    """Return a ``LocalBlob`` model bound to ``db`` only.

    Each store gets its own subclass so two open stores never share a binding.
    """

    class Meta:
        database = db
        table_name = BLOB_TABLE_NAME

    return type("LocalBlob", (LocalBlob,), {"Meta": Meta, "__module__": __name__})


class SqliteBlobStore:
    """Persist blobs in a single ``local_blob`` table.

    ``path`` may be ``":memory:"`` for a throwaway database.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._db = peewee.SqliteDatabase(path, pragmas={"journal_mode": "wal"})
        self._model = bind_blob_model(self._db)
        self._db.connect(reuse_if_open=True)
        self._db.create_tables([self._model], safe=True)
        logger.debug("blob_store_opened", extra={"path": path})

    def save(self, key: str, data: bytes) -> None:
        model = self._model
        with self._db.atomic():
            (
                model.insert(key=key, data=data, updated_at=_utcnow())
                .on_conflict(
                    conflict_target=[model.key],
                    update={model.data: data, model.updated_at: _utcnow()},
                )
                .execute()
            )

    def load(self, key: str) -> bytes | None:
        row = self._model.get_or_none(self._model.key == key)
        if row is None:
            return None
        return bytes(row.data)

    def delete(self, key: str) -> None:
        self._model.delete().where(self._model.key == key).execute()

    def close(self) -> None:
        if not self._db.is_closed():
            self._db.close()
