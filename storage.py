import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Optional

from fastapi import Depends

import config
from errors import UploadError

logger = logging.getLogger(__name__)

# stored suffixes come from the declared type, never the client's filename
IMAGE_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
}


@dataclass
class ImageUpload:
    filename: str
    content_type: str
    data: bytes

    @property
    def media_type(self) -> str:
        return (self.content_type or "").split(";")[0].strip().lower()

    @property
    def extension(self) -> Optional[str]:
        return IMAGE_EXTENSIONS.get(self.media_type)


class BlobStorage:
    """Donation images on local disk, keyed `{owner_id}/{random}.{ext}`."""

    def __init__(self, root: Path, public_prefix: str, max_bytes: int = config.MAX_IMAGE_BYTES):
        self.root = Path(root)
        self.public_prefix = public_prefix.rstrip("/")
        self.max_bytes = max_bytes

    def public_url(self, key: str) -> str:
        return f"{self.public_prefix}/{key}"

    def path_for(self, key: str) -> Path:
        return self.root / key

    def upload(self, owner_id: str, image: ImageUpload) -> str:
        extension = image.extension
        if extension is None:
            raise UploadError("Please upload an image file", status_code=400)
        if not image.data:
            raise UploadError("The uploaded image is empty", status_code=400)
        if len(image.data) > self.max_bytes:
            raise UploadError(
                f"Images must be smaller than {self.max_bytes // 1024} KB",
                status_code=400,
            )

        key = f"{owner_id}/{uuid.uuid4().hex}.{extension}"
        path = self.path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(image.data)
        except OSError as exc:
            logger.exception("Could not store image %s", key)
            raise UploadError(f"Image upload failed: {exc.strerror or exc}") from exc

        logger.info("Stored image %s (%d bytes)", key, len(image.data))
        return self.public_url(key)

    def delete(self, url: Optional[str]) -> None:
        if not url or not url.startswith(self.public_prefix + "/"):
            return
        self.path_for(url[len(self.public_prefix) + 1:]).unlink(missing_ok=True)


_storage: Optional[BlobStorage] = None


def get_blob_storage() -> BlobStorage:
    global _storage
    if _storage is None:
        _storage = BlobStorage(config.UPLOAD_DIR, config.UPLOAD_URL_PREFIX)
    return _storage


BlobStorageDep = Annotated[BlobStorage, Depends(get_blob_storage)]
