"""
Blob storage for authorized voucher artifacts.
"""

from .artifact_store import (
    XML_CONTENT_TYPE,
    ArtifactStore,
    GCSArtifactStore,
    LocalArtifactStore,
    authorized_artifact_key,
    create_artifact_store,
)

__all__ = [
    "XML_CONTENT_TYPE",
    "ArtifactStore",
    "GCSArtifactStore",
    "LocalArtifactStore",
    "authorized_artifact_key",
    "create_artifact_store",
]
