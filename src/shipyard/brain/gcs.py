"""Google Cloud Storage object backend for the brain."""

from __future__ import annotations

import logging
from typing import Any, Optional

from google.api_core.exceptions import GoogleAPIError, NotFound
from google.cloud import storage

LOGGER = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json; charset=utf-8"


class GcsObjectBackend:
    """Stores each record as one object in ``bucket_name``.

    Missing objects and failed reads both come back as ``None``; failed
    writes surface as :class:`OSError` so callers handle them like local
    disk failures.
    """

    def __init__(self, bucket_name: str, *, client: Any = None, project: Optional[str] = None) -> None:
        if not bucket_name:
            raise ValueError("A bucket name is required for the GCS brain backend.")
        self.bucket_name = bucket_name
        self._client = client if client is not None else storage.Client(project=project)
        self._bucket = self._client.bucket(bucket_name)

    def read_text(self, path: str) -> Optional[str]:
        try:
            return self._bucket.blob(path).download_as_text(encoding="utf-8")
        except NotFound:
            return None
        except GoogleAPIError as error:
            LOGGER.warning("Unable to read gs://%s/%s: %s", self.bucket_name, path, error)
            return None

    def write_text(self, path: str, text: str) -> None:
        try:
            self._bucket.blob(path).upload_from_string(text, content_type=JSON_CONTENT_TYPE)
        except GoogleAPIError as error:
            raise OSError(f"Unable to write gs://{self.bucket_name}/{path}: {error}") from error


__all__ = ["GcsObjectBackend"]
