from .base import build_storage_key, sanitize_file_name
from .factory import get_file_storage, reset_file_storage

__all__ = ['build_storage_key', 'get_file_storage', 'reset_file_storage', 'sanitize_file_name']
