"""
工厂函数：根据 settings.PORTAL_FILE_STORAGE 返回 FileStoragePort 实例。
"""

from django.conf import settings

from .base import BaseFileStorage

_instance: BaseFileStorage | None = None


def _build_registry() -> dict[str, type[BaseFileStorage]]:
    # 延迟导入，避免在 Django 启动前触发 boto3 import
    from .adapters import LocalFileStorageAdapter, S3FileStorageAdapter

    return {
        'local': LocalFileStorageAdapter,
        's3':    S3FileStorageAdapter,
    }


def get_file_storage() -> BaseFileStorage:
    """
    Raises:
        ValueError: PORTAL_FILE_STORAGE 未知
    """
    global _instance
    if _instance is not None:
        return _instance

    backend = getattr(settings, 'PORTAL_FILE_STORAGE', 'local')
    registry = _build_registry()
    storage_cls = registry.get(backend)

    if storage_cls is None:
        raise ValueError(
            f'Unknown PORTAL_FILE_STORAGE: {backend!r}. '
            f'Known backends: {list(registry.keys())}'
        )

    _instance = storage_cls()
    return _instance


def reset_file_storage() -> None:
    global _instance
    _instance = None
