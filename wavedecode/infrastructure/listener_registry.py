import logging
import weakref
from typing import Any, Callable, Dict, Hashable, List, Mapping, Sequence

logger = logging.getLogger("ListenerRegistry")


class ListenerRegistry:
    """
    ListenerRegistry: synchronous pub/sub between a source stream and its dependents.

    Responsibility:
    - Topic = source output channel, listener = (listener_id -> callback).
    - Holds bound methods weakly: a source never keeps a dependent alive.
    - Explicit subscribe/unsubscribe pair (bind/rebind).

    Rules:
    - A callback may return a follow-up callable. Follow-ups run once each,
      after every topic of the batch has been delivered.
    """

    def __init__(self):
        self.subscribers: Dict[str, Dict[Hashable, Callable[[], Any]]] = {}

    def subscribe(self, topic: str, listener_id: Hashable, callback: Callable):
        """
        Register callback(listener_id, *args) for a topic.
        Re-subscribing the same id replaces its callback.
        """
        if hasattr(callback, "__self__") and hasattr(callback, "__func__"):
            ref = weakref.WeakMethod(callback)
        else:
            ref = lambda: callback  # noqa: E731

        self.subscribers.setdefault(topic, {})[listener_id] = ref
        logger.debug(f"Listener subscribed: {listener_id} -> {topic}")

    def unsubscribe(self, topic: str, listener_id: Hashable) -> bool:
        listeners = self.subscribers.get(topic)
        if not listeners or listener_id not in listeners:
            return False
        del listeners[listener_id]
        if not listeners:
            del self.subscribers[topic]
        logger.debug(f"Listener unsubscribed: {listener_id} -> {topic}")
        return True

    def listeners(self, topic: str) -> List[Hashable]:
        return list(self.subscribers.get(topic, {}))

    def publish_batch(self, events: Mapping[str, Sequence[Any]]) -> int:
        """
        Call every live listener of each topic in subscription order, then run
        the distinct follow-ups they returned. Dead (garbage-collected) listeners
        are dropped. Returns the number of callbacks notified.
        """
        follow_ups: List[Callable[[], Any]] = []
        notified = 0
        for topic, args in events.items():
            # Copy: callbacks may rebind (and so unsubscribe) while we iterate
            entries = list(self.subscribers.get(topic, {}).items())
            for listener_id, ref in entries:
                callback = ref()
                if callback is None:
                    self.unsubscribe(topic, listener_id)
                    continue
                follow_up = callback(listener_id, *args)
                notified += 1
                if follow_up is not None and follow_up not in follow_ups:
                    follow_ups.append(follow_up)

        for follow_up in follow_ups:
            follow_up()
        return notified
