import io
import logging
import os
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse
from uuid import uuid4

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from drcrop.config import Settings

logger = logging.getLogger(__name__)

_EXTENSIONS = {"image/jpeg": ".jpg", "image/jpg": ".jpg", "image/png": ".png"}


class ImageStoreError(Exception):
    pass


class ImageStore:
    """Keeps uploaded plant photos on local disk, or in S3 when a bucket is set."""

    def __init__(self, settings: Settings, s3_client=None):
        self.upload_dir = Path(settings.upload_dir)
        self.bucket = settings.s3_bucket_name
        self.region = settings.aws_region
        self._s3 = s3_client
        if self.bucket and self._s3 is None:
            self._s3 = boto3.client(
                "s3",
                aws_access_key_id=settings.aws_access_key_id or None,
                aws_secret_access_key=settings.aws_secret_access_key or None,
                region_name=self.region,
            )

    @property
    def uses_s3(self) -> bool:
        return bool(self.bucket)

    def _object_url(self, key: str) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def save(self, data: bytes, filename: Optional[str], content_type: str) -> str:
        """Store the image and return the reference kept on the Analysis row."""
        ext = _EXTENSIONS.get(content_type) or Path(filename or "").suffix.lower() or ".jpg"

        if self.uses_s3:
            base = os.path.basename(filename or f"image{ext}")
            key = f"{uuid4()}_{base}"
            try:
                self._s3.upload_fileobj(io.BytesIO(data), self.bucket, key, ExtraArgs={"ContentType": content_type})
            except (BotoCoreError, ClientError) as exc:
                reason = str(exc)
                if "NoSuchBucket" in reason:
                    reason = "S3 bucket not found. Verify S3_BUCKET_NAME or create the bucket in AWS."
                raise ImageStoreError(reason) from exc
            return self._object_url(key)

        path = self.upload_dir / f"{uuid4().hex}{ext}"
        try:
            self.upload_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise ImageStoreError(f"Could not write image: {exc}") from exc
        return str(path)

    def remove(self, image_path: Optional[str]) -> None:
        """Best-effort removal; a missing or locked file never fails the caller."""
        if not image_path:
            return

        if image_path.startswith("http"):
            if not self.uses_s3:
                return
            key = urlparse(image_path).path.lstrip("/")
            try:
                self._s3.delete_object(Bucket=self.bucket, Key=key)
            except (BotoCoreError, ClientError) as exc:
                logger.warning("Could not delete S3 object %s: %s", key, exc)
            return

        path = Path(image_path)
        try:
            if path.is_file() and path.resolve().is_relative_to(self.upload_dir.resolve()):
                path.unlink()
        except OSError as exc:
            logger.warning("Could not delete image %s: %s", image_path, exc)
