"""External HTTP collaborators: source media download and storage publish.

WHY: The pipeline fetches the source video from a URL and publishes the
rendered clip to object storage. Both are plain HTTP, so both live here
behind small async functions and one client class.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. download.py streams the
source to disk; storage.py uploads to Supabase Storage and builds public URLs.

RULES:
- All HTTP calls go through this package (no direct httpx usage elsewhere)
- Failures raise typed errors (DownloadError, StorageError)
"""

from clip_worker.api.download import DownloadError, download_media
from clip_worker.api.storage import StorageClient, StorageError, build_object_name

__all__ = [
    "DownloadError",
    "StorageClient",
    "StorageError",
    "build_object_name",
    "download_media",
]
