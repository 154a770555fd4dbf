"""
Artifact store abstraction for authorized voucher XML.

Supports:
- LOCAL: filesystem directory (development, tests)
- GCS: Google Cloud Storage bucket (production)

No artifact store at all is a valid configuration: the authorization worker
then skips storage.
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path

from sri_authorizer.core.errors import ConfigurationError
from sri_authorizer.observability.logger import get_logger
from sri_authorizer.utils.validation import ValidationError, validate_artifact_key

logger = get_logger(__name__)

XML_CONTENT_TYPE = "application/xml; charset=utf-8"


def authorized_artifact_key(company_id: str, access_key: str) -> str:
    """Deterministic key of the authorized XML for a voucher."""
    return f"{company_id}/authorized/{access_key}.xml"


class ArtifactStore(ABC):
    """Blob store addressed by string keys."""

    @abstractmethod
    def put(self, key: str, body: str | bytes, content_type: str) -> str:
        """Store a blob and return its location."""
        pass

    @abstractmethod
    def get(self, key: str) -> bytes | None:
        """Return blob content, or None when absent."""
        pass


class LocalArtifactStore(ArtifactStore):
    """
    Filesystem artifact store.

    The content type of each blob is kept in a ``<key>.meta.json`` sidecar.
    """

    def __init__(self, base_path: str | Path):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"LocalArtifactStore initialized with base_path: {self.base_path}")

    def _resolve(self, key: str) -> Path:
        try:
            validate_artifact_key(key)
        except ValidationError as e:
            raise ValueError(f"Invalid artifact key '{key}': {e}") from e
        return self.base_path / key

    def put(self, key: str, body: str | bytes, content_type: str) -> str:
        full_path = self._resolve(key)
        full_path.parent.mkdir(parents=True, exist_ok=True)

        data = body.encode("utf-8") if isinstance(body, str) else body
        full_path.write_bytes(data)
        full_path.with_name(full_path.name + ".meta.json").write_text(
            json.dumps({"content_type": content_type})
        )
        logger.info(f"Artifact saved locally: {full_path}")
        return str(full_path)

    def get(self, key: str) -> bytes | None:
        full_path = self._resolve(key)
        if not full_path.exists():
            return None
        return full_path.read_bytes()

    def content_type(self, key: str) -> str | None:
        meta_path = self._resolve(key + ".meta.json")
        if not meta_path.exists():
            return None
        return json.loads(meta_path.read_text()).get("content_type")


class GCSArtifactStore(ArtifactStore):
    """Google Cloud Storage artifact store."""

    def __init__(self, bucket_name: str, project_id: str | None = None, client=None):
        if client is None:
            from google.cloud import storage

            client = storage.Client(project=project_id)

        self.client = client
        self.bucket_name = bucket_name
        self.bucket = client.bucket(bucket_name)
        logger.info(f"GCSArtifactStore initialized for bucket: {bucket_name}")

    def put(self, key: str, body: str | bytes, content_type: str) -> str:
        blob = self.bucket.blob(key)
        blob.upload_from_string(body, content_type=content_type)
        location = f"gs://{self.bucket_name}/{key}"
        logger.info(f"Artifact saved to GCS: {location}")
        return location

    def get(self, key: str) -> bytes | None:
        from google.api_core.exceptions import NotFound

        try:
            return self.bucket.blob(key).download_as_bytes()
        except NotFound:
            return None


def create_artifact_store(
    store_type: str,
    base_path: str | None = None,
    bucket_name: str | None = None,
    project_id: str | None = None,
) -> ArtifactStore | None:
    """
    Build the configured artifact store.

    Args:
        store_type: 'none', 'local' or 'gcs'
        base_path: Directory for the local store
        bucket_name: Bucket for the GCS store
        project_id: Optional GCP project

    Returns:
        ArtifactStore, or None when storage is disabled

    Raises:
        ConfigurationError: If the selected store is missing its settings
    """
    store_type = (store_type or "none").lower()

    if store_type == "none":
        logger.warning("No artifact store configured; authorized XML will not be stored")
        return None

    if store_type == "local":
        if not base_path:
            raise ConfigurationError("ARTIFACT_STORE_PATH is required when ARTIFACT_STORE_TYPE=local")
        return LocalArtifactStore(base_path)

    if store_type == "gcs":
        if not bucket_name:
            raise ConfigurationError("ARTIFACT_BUCKET is required when ARTIFACT_STORE_TYPE=gcs")
        return GCSArtifactStore(bucket_name, project_id=project_id)

    raise ConfigurationError(f"Unsupported ARTIFACT_STORE_TYPE: {store_type}")
