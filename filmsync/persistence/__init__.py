from filmsync.persistence.blob_store import (
    DEFAULT_SCOPE_NAME,
    BlobStore,
    MemoryBlobStore,
    family_scope_key,
)
from filmsync.persistence.sqlite import SqliteBlobStore

__all__ = [
    "DEFAULT_SCOPE_NAME",
    "BlobStore",
    "MemoryBlobStore",
    "SqliteBlobStore",
    "family_scope_key",
]
