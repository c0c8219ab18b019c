"""
工厂函数：根据 settings.PORTAL_AUTH_PROVIDER 返回 AuthProvider 实例。

进程内只构造一次（启动时按 profile 选定），reset_auth_provider() 供测试清缓存。
"""

from django.conf import settings

from .base import BaseAuthProvider

_instance: BaseAuthProvider | None = None


def _build_registry() -> dict[str, type[BaseAuthProvider]]:
    # 延迟导入，避免在 Django 启动前触发 models import
    from .adapters import JwtAuthAdapter

    return {
        'jwt': JwtAuthAdapter,
    }


def get_auth_provider() -> BaseAuthProvider:
    """
    Raises:
        ValueError: PORTAL_AUTH_PROVIDER 未知
    """
    global _instance
    if _instance is not None:
        return _instance

    provider = getattr(settings, 'PORTAL_AUTH_PROVIDER', 'jwt')
    registry = _build_registry()
    provider_cls = registry.get(provider)

    if provider_cls is None:
        raise ValueError(
            f'Unknown PORTAL_AUTH_PROVIDER: {provider!r}. '
            f'Known providers: {list(registry.keys())}'
        )

    _instance = provider_cls()
    return _instance


def reset_auth_provider() -> None:
    global _instance
    _instance = None
