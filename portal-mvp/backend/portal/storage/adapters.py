"""
具体 FileStoragePort 实现。

已注册：
  local — LocalFileStorageAdapter  (PORTAL_LOCAL_STORAGE_ROOT)
  s3    — S3FileStorageAdapter     (PORTAL_S3_BUCKET / PORTAL_S3_REGION / PORTAL_S3_ENDPOINT_URL)
"""

import logging
import shutil
from pathlib import Path
from typing import BinaryIO

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings

from ..exceptions import NotFound, StorageFailure, ValidationFailure
from .base import BaseFileStorage, build_storage_key

logger = logging.getLogger(__name__)


# ── LocalFileStorageAdapter ────────────────────────────────────────────────
#
# 本地磁盘，key 直接映射成 root 下的相对路径。
# 不支持 presigned URL（沿用基类的 Unsupported）。

class LocalFileStorageAdapter(BaseFileStorage):

    def __init__(self, root: str | None = None):
        self.root = Path(root or settings.PORTAL_LOCAL_STORAGE_ROOT).resolve()

    def _path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        # key 解析后跑到 root 外面 → 拒绝（../ 之类的路径穿越）
        if path != self.root and self.root not in path.parents:
            raise ValidationFailure('Invalid storage key', code='INVALID_STORAGE_KEY', detail={'key': key})
        return path

    def store_file(self, file_name: str, content_type: str, stream: BinaryIO, size: int, prefix: str = 'forms') -> str:
        key = build_storage_key(file_name, prefix=prefix)
        path = self._path_for(key)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'xb') as fh:
                shutil.copyfileobj(stream, fh)
        except OSError as exc:
            logger.error('Error storing file: %s', file_name, exc_info=exc)
            raise StorageFailure(f'Failed to store file: {file_name}') from exc

        logger.info('File stored successfully: %s (%s, %d bytes)', key, content_type, size)
        return key

    def retrieve_file(self, key: str) -> BinaryIO:
        path = self._path_for(key)
        if not path.is_file():
            raise NotFound('File', key)

        try:
            return open(path, 'rb')
        except OSError as exc:
            logger.error('Error retrieving file: %s', key, exc_info=exc)
            raise StorageFailure(f'Failed to retrieve file: {key}') from exc

    def delete_file(self, key: str) -> None:
        path = self._path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.error('Error deleting file: %s', key, exc_info=exc)
            raise StorageFailure(f'Failed to delete file: {key}') from exc
        logger.info('File deleted successfully: %s', key)

    def file_exists(self, key: str) -> bool:
        try:
            return self._path_for(key).is_file()
        except ValidationFailure:
            return False


# ── S3FileStorageAdapter ───────────────────────────────────────────────────
#
# boto3，本地用 MinIO 时把 PORTAL_S3_ENDPOINT_URL 指到 http://localhost:9000。
# bucket 不存在时第一次使用会自动创建；连不上只打 warning，让应用照常启动。

class S3FileStorageAdapter(BaseFileStorage):

    def __init__(self, bucket_name: str | None = None, region: str | None = None,
                 endpoint_url: str | None = None, client=None):
        self.bucket_name = bucket_name or settings.PORTAL_S3_BUCKET
        self.region = region or settings.PORTAL_S3_REGION
        endpoint_url = endpoint_url or settings.PORTAL_S3_ENDPOINT_URL

        if client is not None:
            self.s3_client = client
        elif endpoint_url:
            self.s3_client = boto3.client('s3', region_name=self.region, endpoint_url=endpoint_url)
        else:
            self.s3_client = boto3.client('s3', region_name=self.region)

        self._bucket_checked = False

    def _ensure_bucket(self) -> None:
        if self._bucket_checked:
            return
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
            logger.info('Storage bucket already exists: %s', self.bucket_name)
        except ClientError as exc:
            if _error_code(exc) in ('404', 'NoSuchBucket', 'NotFound'):
                self.s3_client.create_bucket(Bucket=self.bucket_name)
                logger.info('Created storage bucket: %s', self.bucket_name)
            else:
                logger.warning('Could not check storage bucket %s: %s', self.bucket_name, exc)
        except BotoCoreError as exc:
            logger.warning('Object storage not available - file operations will fail: %s', exc)
            return
        self._bucket_checked = True

    def store_file(self, file_name: str, content_type: str, stream: BinaryIO, size: int, prefix: str = 'forms') -> str:
        key = build_storage_key(file_name, prefix=prefix)
        try:
            self._ensure_bucket()
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=stream,
                ContentLength=size,
                ContentType=content_type or 'application/octet-stream',
                ServerSideEncryption='AES256',
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error('Error storing file: %s', file_name, exc_info=exc)
            raise StorageFailure(f'Failed to store file: {file_name}') from exc

        logger.info('File stored successfully: %s', key)
        return key

    def retrieve_file(self, key: str) -> BinaryIO:
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
        except ClientError as exc:
            if _error_code(exc) in ('NoSuchKey', '404', 'NotFound'):
                raise NotFound('File', key) from exc
            logger.error('Error retrieving file: %s', key, exc_info=exc)
            raise StorageFailure(f'Failed to retrieve file: {key}') from exc
        except BotoCoreError as exc:
            logger.error('Error retrieving file: %s', key, exc_info=exc)
            raise StorageFailure(f'Failed to retrieve file: {key}') from exc

        return response['Body']

    def delete_file(self, key: str) -> None:
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as exc:
            logger.error('Error deleting file: %s', key, exc_info=exc)
            raise StorageFailure(f'Failed to delete file: {key}') from exc
        logger.info('File deleted successfully: %s', key)

    def file_exists(self, key: str) -> bool:
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=key)
            return True
        except ClientError as exc:
            if _error_code(exc) in ('NoSuchKey', '404', 'NotFound'):
                return False
            logger.error('Error checking file existence: %s', key, exc_info=exc)
            raise StorageFailure(f'Failed to check file existence: {key}') from exc
        except BotoCoreError as exc:
            logger.error('Error checking file existence: %s', key, exc_info=exc)
            raise StorageFailure(f'Failed to check file existence: {key}') from exc

    def generate_presigned_url(self, key: str, expiry_seconds: int) -> str:
        try:
            return self.s3_client.generate_presigned_url(
                'get_object',
                Params={'Bucket': self.bucket_name, 'Key': key},
                ExpiresIn=expiry_seconds,
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error('Error generating presigned URL: %s', key, exc_info=exc)
            raise StorageFailure(f'Failed to generate presigned URL: {key}') from exc


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get('Error', {}).get('Code', ''))
