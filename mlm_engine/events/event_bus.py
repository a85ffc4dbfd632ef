# mlm_engine/events/event_bus.py
"""
Event bus for decoupled communication between components.
Notifications, reporting caches and webhooks subscribe here.
"""
from typing import Dict, List, Callable, Any
import logging
import asyncio

logger = logging.getLogger(__name__)


class EventBus:
    """
    In-process publish/subscribe.
    Services emit only after their transaction is committed, so a handler
    never sees data that could still be rolled back.
    """

    _instance = None
    _handlers: Dict[str, List[Callable]] = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._handlers = {}
        return cls._instance

    def subscribe(self, eventName: str, handler: Callable):
        self._handlers.setdefault(eventName, [])
        if handler not in self._handlers[eventName]:
            self._handlers[eventName].append(handler)
            logger.debug(f"Handler {handler.__name__} subscribed to {eventName}")

    def unsubscribe(self, eventName: str, handler: Callable):
        handlers = self._handlers.get(eventName, [])
        if handler in handlers:
            handlers.remove(handler)
            logger.debug(f"Handler {handler.__name__} unsubscribed from {eventName}")

    async def emit(self, eventName: str, data: Dict[str, Any]) -> int:
        """
        Deliver data to every subscriber in subscription order.
        Handler failures are logged and counted; returns the failure count.
        """
        handlers = list(self._handlers.get(eventName, []))
        if not handlers:
            return 0

        logger.debug(f"Emitting {eventName} to {len(handlers)} handlers: {data}")

        failures = 0
        for handler in handlers:
            try:
                if asyncio.iscoroutinefunction(handler):
                    await handler(data)
                else:
                    handler(data)
            except Exception as e:
                failures += 1
                logger.error(f"Error in handler {handler.__name__} for event {eventName}: {e}")

        return failures

    def clear(self):
        self._handlers.clear()


# Global event bus instance
eventBus = EventBus()


# Predefined events
class MLMEvents:
    """Standard referral engine events."""

    MEMBER_REGISTERED = "member.registered"
    MEMBER_ATTACHED = "member.attached"
    PATHS_REBUILT = "hierarchy.rebuilt"

    COMMISSION_CREATED = "commission.created"
    COMMISSION_APPROVED = "commission.approved"
    COMMISSION_CANCELLED = "commission.cancelled"

    WITHDRAWAL_REQUESTED = "withdrawal.requested"
    WITHDRAWAL_APPROVED = "withdrawal.approved"
    WITHDRAWAL_PAID = "withdrawal.paid"
    WITHDRAWAL_REJECTED = "withdrawal.rejected"

    SETTINGS_UPDATED = "settings.updated"
