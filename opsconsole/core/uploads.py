import logging
import re
import time
import uuid
from typing import List, Optional, Tuple

from opsconsole.db.backend import Backend

logger = logging.getLogger(__name__)

# (filename, content, content_type) as read from an UploadFile
UploadedFile = Tuple[str, bytes, str]

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_name(filename: str) -> str:
    cleaned = _UNSAFE.sub("_", filename or "file").strip("._")
    return cleaned or "file"


async def store_file(
    backend: Backend,
    bucket: str,
    prefix: str,
    filename: str,
    content: bytes,
    content_type: Optional[str] = None,
) -> str:
    """Upload under `<prefix>/<epoch-ms>-<nonce>-<name>` and return the public URL."""
    path = f"{prefix.strip('/')}/{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-{safe_name(filename)}"
    stored = await backend.upload(bucket, path, content, content_type or "application/octet-stream")
    logger.info(f"Uploaded {filename} to {bucket}/{stored}")
    return backend.public_url(bucket, stored)


async def store_files(backend: Backend, bucket: str, prefix: str, files: List[UploadedFile]) -> List[str]:
    urls = []
    for filename, content, content_type in files:
        urls.append(await store_file(backend, bucket, prefix, filename, content, content_type))
    return urls
