"""Event bus infrastructure for the blue-green controller.

The controller, the pool manager, the routing table and the health services
publish ``DomainEvent`` instances on an :class:`EventBus`.  Subscribers are
the observability sinks: the :class:`EventStore` used for replay in tests
and the CLI, and the ``DeploymentAuditTrail``.

Dispatch follows the event class hierarchy, so a handler subscribed to
``DomainEvent`` sees every event while a handler subscribed to
``BakePolled`` sees only bake polls.  Publishing never fails because of a
subscriber: a deployment cycle must not roll back because an audit sink is
down.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict, deque
from collections.abc import Callable, Iterator, Sequence

from blue_green.domain.events import DomainEvent

logger = logging.getLogger(__name__)

Handler = Callable[[DomainEvent], None]


# ===================================================================== #
#  Event Bus                                                             #
# ===================================================================== #

class EventBus:
    """Thread-safe synchronous pub-sub for deployment events.

    Handlers run in the publishing thread.  For one event, handlers bound to
    the most general class run first (``DomainEvent`` subscribers before
    ``DeploymentStarted`` subscribers), each group in registration order.
    A handler that raises is logged and skipped.

    Usage::

        bus = EventBus()
        unsubscribe = bus.subscribe(DeploymentStateChanged, on_transition)
        bus.publish(DeploymentStateChanged(...))
        unsubscribe()
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: dict[type[DomainEvent], list[Handler]] = defaultdict(list)

    def subscribe(
        self, event_type: type[DomainEvent], handler: Handler
    ) -> Callable[[], bool]:
        """Register *handler* for *event_type* and its subclasses.

        Returns a callable that removes the subscription again.
        """
        with self._lock:
            self._handlers[event_type].append(handler)
        return lambda: self.unsubscribe(event_type, handler)

    def subscribe_all(self, handler: Handler) -> Callable[[], bool]:
        """Register *handler* for every event."""
        return self.subscribe(DomainEvent, handler)

    def unsubscribe(self, event_type: type[DomainEvent], handler: Handler) -> bool:
        """Remove one registration of *handler*.  Returns ``True`` if found."""
        with self._lock:
            handlers = self._handlers.get(event_type)
            if not handlers or handler not in handlers:
                return False
            handlers.remove(handler)
            return True

    def publish(self, event: DomainEvent) -> None:
        """Deliver *event* to every handler subscribed to one of its classes."""
        with self._lock:
            targets = [
                handler
                for cls in reversed(type(event).__mro__)
                for handler in self._handlers.get(cls, ())
            ]

        for handler in targets:
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Subscriber %r failed on %s from %s",
                    handler,
                    type(event).__name__,
                    event.source_id or "<unknown>",
                )

    def handler_count(self, event_type: type[DomainEvent] | None = None) -> int:
        """Handlers registered for exactly *event_type*, or in total."""
        with self._lock:
            if event_type is not None:
                return len(self._handlers.get(event_type, ()))
            return sum(len(hs) for hs in self._handlers.values())


# ===================================================================== #
#  Event Store                                                           #
# ===================================================================== #

class EventStore:
    """Bounded in-memory log of published events.

    Wire it to a bus so that every event is kept::

        store = EventStore()
        bus.subscribe_all(store.append)

    Parameters
    ----------
    max_size:
        Number of events kept; the oldest are dropped first.  ``0`` keeps
        everything.
    """

    def __init__(self, max_size: int = 0) -> None:
        self._events: deque[DomainEvent] = deque(maxlen=max_size or None)
        self._lock = threading.Lock()

    def append(self, event: DomainEvent) -> None:
        with self._lock:
            self._events.append(event)

    def query(
        self,
        event_type: type[DomainEvent] | None = None,
        deployment_id: str | None = None,
        pool_id: str | None = None,
        since: float | None = None,
        limit: int = 0,
    ) -> Sequence[DomainEvent]:
        """Return stored events matching every given filter, oldest first.

        Parameters
        ----------
        event_type:
            Keep instances of this class (subclasses included).
        deployment_id:
            Keep events of this deployment cycle.
        pool_id:
            Keep events about this target pool.
        since:
            Keep events with ``timestamp >= since``.
        limit:
            Keep only the newest *limit* matches (0 = all).
        """
        with self._lock:
            events = list(self._events)

        def matches(e: DomainEvent) -> bool:
            if event_type is not None and not isinstance(e, event_type):
                return False
            if deployment_id is not None and getattr(e, "deployment_id", None) != deployment_id:
                return False
            if pool_id is not None and getattr(e, "pool_id", None) != pool_id:
                return False
            return since is None or e.timestamp >= since

        result = [e for e in events if matches(e)]
        return result[-limit:] if limit > 0 else result

    @property
    def latest(self) -> DomainEvent | None:
        with self._lock:
            return self._events[-1] if self._events else None

    def __iter__(self) -> Iterator[DomainEvent]:
        with self._lock:
            return iter(list(self._events))

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def __bool__(self) -> bool:
        return len(self) > 0
