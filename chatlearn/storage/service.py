# chatlearn/storage/service.py
"""
S3-compatible object storage for generated, edited and uploaded images.
"""

from typing import List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from fastapi.concurrency import run_in_threadpool

from ..config import settings
from ..error_handlers import ErrorCode, ExternalServiceException
from ..logging_config import get_logger
from ..monitoring import track_operation

logger = get_logger(__name__)


class ObjectStorage:
    """Thin wrapper over a boto3 S3 client bound to one bucket"""

    def __init__(self, bucket_name: str = None):
        self.bucket_name = bucket_name or settings.STORAGE_BUCKET
        self.s3_client = boto3.client(
            "s3",
            endpoint_url=settings.STORAGE_ENDPOINT_URL,
            aws_access_key_id=settings.STORAGE_ACCESS_KEY_ID,
            aws_secret_access_key=settings.STORAGE_SECRET_ACCESS_KEY,
            region_name=settings.STORAGE_REGION,
        )

    def public_url(self, path: str) -> str:
        if settings.STORAGE_PUBLIC_BASE_URL:
            return f"{settings.STORAGE_PUBLIC_BASE_URL.rstrip('/')}/{self.bucket_name}/{path}"
        if settings.STORAGE_ENDPOINT_URL:
            return f"{settings.STORAGE_ENDPOINT_URL.rstrip('/')}/{self.bucket_name}/{path}"
        return f"https://{self.bucket_name}.s3.{settings.STORAGE_REGION}.amazonaws.com/{path}"

    def upload(self, path: str, data: bytes, content_type: str = "image/png") -> str:
        """Upload bytes under `path`, replacing any object already there. Returns the public URL."""
        try:
            with track_operation("storage_upload", path=path, size_bytes=len(data)):
                self.s3_client.put_object(
                    Bucket=self.bucket_name,
                    Key=path,
                    Body=data,
                    ContentType=content_type,
                )
        except (BotoCoreError, ClientError) as e:
            raise ExternalServiceException(
                service_name="Object Storage",
                message=f"upload failed for {path}: {e}",
                error_code=ErrorCode.STORAGE_ERROR,
                status_code=500,
            )

        logger.info(f"Stored object {path}", extra={"extra_data": {"bucket": self.bucket_name}})
        return self.public_url(path)

    def list_paths(self, prefix: str) -> List[str]:
        paths = []
        paginator = self.s3_client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
            for obj in page.get("Contents", []):
                paths.append(obj["Key"])
        return paths

    def delete_prefix(self, prefix: str) -> int:
        """Delete every object under `prefix`. Returns how many were removed."""
        paths = self.list_paths(prefix)
        # S3 caps delete_objects at 1000 keys
        for i in range(0, len(paths), 1000):
            batch = paths[i:i + 1000]
            self.s3_client.delete_objects(
                Bucket=self.bucket_name,
                Delete={"Objects": [{"Key": p} for p in batch], "Quiet": True},
            )
        return len(paths)

    async def upload_async(self, path: str, data: bytes, content_type: str = "image/png") -> str:
        return await run_in_threadpool(self.upload, path, data, content_type)

    async def delete_prefix_async(self, prefix: str) -> int:
        return await run_in_threadpool(self.delete_prefix, prefix)


_storage: Optional[ObjectStorage] = None


def get_storage() -> ObjectStorage:
    """Process-wide storage client (FastAPI dependency and worker helper)"""
    global _storage
    if _storage is None:
        _storage = ObjectStorage()
    return _storage
