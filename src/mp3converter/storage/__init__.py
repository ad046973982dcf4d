"""Binary object storage for uploaded videos and converted audio."""
from __future__ import annotations

from .gridfs_store import Bucket, ObjectStore, StoredObject, StoredStream

__all__ = ["Bucket", "ObjectStore", "StoredObject", "StoredStream"]
