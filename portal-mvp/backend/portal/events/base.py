"""
EventBusPort — 领域事件发布的 port。

实现：
  in_memory — InMemoryEventBusAdapter（同进程同步投递，按注册顺序）
  celery    — CeleryEventBusAdapter（通过 Celery 异步投递，at-least-once）

publish() 永远不能把异常抛回触发它的业务动作：handler 出错只记日志，
并且一个 handler 的失败不影响其他 handler。
"""

from abc import ABC, abstractmethod
from typing import Callable

from .types import DomainEvent

EventHandler = Callable[[DomainEvent], None]


class BaseEventBus(ABC):

    @abstractmethod
    def publish(self, event: DomainEvent) -> None:
        """fire-and-forget。"""

    @abstractmethod
    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """同一个 event_type 可以注册多个 handler，全部都会执行。"""
