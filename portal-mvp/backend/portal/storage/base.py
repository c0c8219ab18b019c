"""
FileStoragePort — 文件存储的 port。

实现：
  local — LocalFileStorageAdapter（本地磁盘，开发 / 测试）
  s3    — S3FileStorageAdapter（boto3，AWS S3 或 MinIO）

storage key 对调用方是 opaque 的；调用方只能拿它来 retrieve / delete，不要解析。
"""

import re
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import BinaryIO

from ..exceptions import Unsupported

# 允许出现在 key 里的字符，其余一律替换成 "_"
_UNSAFE_CHARS_RE = re.compile(r'[^a-zA-Z0-9._-]')


def sanitize_file_name(file_name: str | None) -> str:
    sanitized = _UNSAFE_CHARS_RE.sub('_', file_name or '')
    return sanitized or 'file'


def build_storage_key(file_name: str | None, prefix: str = 'forms', now: datetime | None = None) -> str:
    """
    生成不会冲突的 key：<prefix>/<YYYY>/<MM>/<uuid>-<sanitized-name>

    唯一性只来自日期分区 + uuid4；文件名只是为了方便人看，调用方传什么都不会覆盖已有对象。
    """
    now = now or datetime.now(timezone.utc)
    return f'{prefix}/{now.year:d}/{now.month:02d}/{uuid.uuid4()}-{sanitize_file_name(file_name)}'


class BaseFileStorage(ABC):

    @abstractmethod
    def store_file(self, file_name: str, content_type: str, stream: BinaryIO, size: int, prefix: str = 'forms') -> str:
        """
        保存文件，返回 storage key。

        Raises:
            StorageFailure: 底层存储出错
        """

    @abstractmethod
    def retrieve_file(self, key: str) -> BinaryIO:
        """
        返回一个新的二进制流，只能完整读一次，不做缓存。

        Raises:
            NotFound: key 不存在
            StorageFailure: 底层存储出错
        """

    @abstractmethod
    def delete_file(self, key: str) -> None:
        """删除对象。key 不存在时不报错；调用方不要依赖这一点。"""

    @abstractmethod
    def file_exists(self, key: str) -> bool:
        """key 不存在返回 False，不抛异常。"""

    def generate_presigned_url(self, key: str, expiry_seconds: int) -> str:
        """
        生成限时访问 URL。可选能力：不支持的 adapter 必须抛 Unsupported，
        不能退化成返回一个永久链接。
        """
        raise Unsupported(
            'Pre-signed URLs are not supported by this storage adapter',
            detail={'adapter': type(self).__name__},
        )
