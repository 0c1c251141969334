"""
图片存储服务
Pillow 压缩为 WebP，经 boto3 上传至 S3 兼容对象存储
"""
import io
import logging
import os
import uuid
from functools import lru_cache
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from PIL import Image, UnidentifiedImageError

from backoffice.config import settings
from backoffice_core.errors import UpstreamError, ValidationFailedError

logger = logging.getLogger(__name__)

WEBP_CONTENT_TYPE = "image/webp"


def compress_image(raw: bytes, quality: Optional[int] = None) -> bytes:
    """重新编码为 WebP（有损，固定质量）"""
    quality = quality or settings.IMAGE_QUALITY
    try:
        with Image.open(io.BytesIO(raw)) as image:
            if image.mode not in ("RGB", "RGBA"):
                has_alpha = image.mode.endswith("A") or "transparency" in image.info
                image = image.convert("RGBA" if has_alpha else "RGB")
            buffer = io.BytesIO()
            image.save(buffer, format="WEBP", quality=quality)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        logger.warning(f"Image compression failed: {e}")
        raise ValidationFailedError("Image compression failed", ["Image compression failed"])
    return buffer.getvalue()


def build_object_key(folder: str, filename: str) -> str:
    """<folder>/<uuid4>.<原扩展名>"""
    extension = os.path.splitext(filename or "")[1].lstrip(".").lower() or "webp"
    return f"{folder}/{uuid.uuid4()}.{extension}"


def normalize_folder(folder: Optional[str]) -> str:
    cleaned = (folder or "").strip().strip("/")
    if not cleaned or ".." in cleaned.split("/"):
        raise ValidationFailedError("Invalid folder upload", ["Please upload a valid folder"])
    return cleaned


class ImageStorage:
    """S3 兼容对象存储"""

    def __init__(self, client=None, bucket: Optional[str] = None,
                 public_url: Optional[str] = None):
        self.bucket = bucket or settings.STORAGE_BUCKET
        self.client = client or boto3.client("s3", **_client_kwargs())
        self._public_url = public_url or settings.STORAGE_PUBLIC_URL

    def put(self, key: str, body: bytes, content_type: str = WEBP_CONTENT_TYPE) -> None:
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=body, ContentType=content_type)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to upload {key} to bucket {self.bucket}: {e}")
            raise UpstreamError("Upload image failed", ["Upload image failed"])

    def public_url(self, key: str) -> str:
        if self._public_url:
            return f"{self._public_url.rstrip('/')}/{key}"
        if settings.STORAGE_ENDPOINT_URL:
            return f"{settings.STORAGE_ENDPOINT_URL.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{settings.STORAGE_REGION}.amazonaws.com/{key}"

    def upload_image(self, folder: str, filename: str, raw: bytes) -> Dict[str, str]:
        """压缩并上传，返回 {path, full_path, image_url}"""
        compressed = compress_image(raw)
        key = build_object_key(folder, filename)
        self.put(key, compressed)
        logger.info(f"Uploaded image {key} ({len(raw)} -> {len(compressed)} bytes)")
        return {
            "path": key,
            "full_path": f"{self.bucket}/{key}",
            "image_url": self.public_url(key),
        }


def _client_kwargs() -> Dict[str, Any]:
    """显式凭证仅在配置时传入，否则使用 boto3 默认凭证链"""
    kwargs: Dict[str, Any] = {"region_name": settings.STORAGE_REGION}
    if settings.STORAGE_ENDPOINT_URL:
        kwargs["endpoint_url"] = settings.STORAGE_ENDPOINT_URL
    if settings.STORAGE_ACCESS_KEY_ID and settings.STORAGE_SECRET_ACCESS_KEY:
        kwargs["aws_access_key_id"] = settings.STORAGE_ACCESS_KEY_ID
        kwargs["aws_secret_access_key"] = settings.STORAGE_SECRET_ACCESS_KEY
    return kwargs


@lru_cache
def get_image_storage() -> ImageStorage:
    """依赖注入：进程内共享的存储客户端"""
    return ImageStorage()
