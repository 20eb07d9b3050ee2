"""Event emitter implementation using Observer Pattern."""
import logging
from typing import Callable, Dict, List, Optional


class EventEmitter:
    """
    Event emitter for upload lifecycle notifications.
    
    A failing listener is logged and does not stop the remaining
    listeners or the emitting upload.
    """
    
    def __init__(self, logger_name: str = 'tusupload.events'):
        """Initializes event emitter."""
        self._events: Dict[str, List[Callable]] = {}
        self._logger = logging.getLogger(logger_name)
    
    def on(self, event: str, callback: Callable) -> 'EventEmitter':
        """Registers an event handler."""
        self._events.setdefault(event, []).append(callback)
        return self
    
    def once(self, event: str, callback: Callable) -> 'EventEmitter':
        """Registers a handler that is removed after its first call."""
        def wrapper(*args, **kwargs):
            self.off(event, wrapper)
            callback(*args, **kwargs)
        return self.on(event, wrapper)
    
    def emit(self, event: str, *args, **kwargs):
        """Emits an event."""
        for callback in list(self._events.get(event, ())):
            try:
                callback(*args, **kwargs)
            except Exception:
                self._logger.exception(f"Listener for '{event}' failed")
    
    def off(self, event: str, callback: Optional[Callable] = None) -> 'EventEmitter':
        """Removes an event handler, or all handlers for the event."""
        if event not in self._events:
            return self
        
        if callback is None:
            del self._events[event]
        else:
            self._events[event] = [cb for cb in self._events[event] if cb != callback]
        
        return self
    
    def listener_count(self, event: str) -> int:
        """Number of handlers registered for an event."""
        return len(self._events.get(event, ()))
