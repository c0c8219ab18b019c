"""
工厂函数：根据 settings.PORTAL_EVENT_BUS 返回 EventBusPort 实例。

bus 在第一次使用时构造，并注册 handlers.register_default_handlers() 里的默认订阅。
"""

from django.conf import settings

from .base import BaseEventBus

_instance: BaseEventBus | None = None


def _build_registry() -> dict[str, type[BaseEventBus]]:
    from .adapters import CeleryEventBusAdapter, InMemoryEventBusAdapter

    return {
        'in_memory': InMemoryEventBusAdapter,
        'celery':    CeleryEventBusAdapter,
    }


def get_event_bus() -> BaseEventBus:
    """
    Raises:
        ValueError: PORTAL_EVENT_BUS 未知
    """
    global _instance
    if _instance is not None:
        return _instance

    backend = getattr(settings, 'PORTAL_EVENT_BUS', 'in_memory')
    registry = _build_registry()
    bus_cls = registry.get(backend)

    if bus_cls is None:
        raise ValueError(
            f'Unknown PORTAL_EVENT_BUS: {backend!r}. '
            f'Known backends: {list(registry.keys())}'
        )

    from .handlers import register_default_handlers

    bus = bus_cls()
    register_default_handlers(bus)
    _instance = bus
    return _instance


def reset_event_bus() -> None:
    global _instance
    _instance = None
