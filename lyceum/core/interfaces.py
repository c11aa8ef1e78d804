"""
Core interfaces and abstract base classes for the Lyceum platform.
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional, TypeVar, Generic


T = TypeVar('T')


class Repository(ABC, Generic[T]):
    """Abstract base class for repositories."""

    @abstractmethod
    def save(self, entity: T, expected_version: Optional[int] = None) -> T:
        """Save an entity, optionally only if the stored version still matches."""
        pass

    @abstractmethod
    def find_by_id(self, entity_id: str) -> Optional[T]:
        """Find entity by ID."""
        pass

    @abstractmethod
    def find_all(self) -> List[T]:
        """Find all entities of this kind."""
        pass

    @abstractmethod
    def find_where(self, predicate: Callable[[T], bool]) -> List[T]:
        """Find all entities matching a predicate."""
        pass

    @abstractmethod
    def delete(self, entity_id: str) -> bool:
        """Delete an entity by ID."""
        pass


class EventHandler(ABC):
    """Abstract base class for event handlers."""

    @abstractmethod
    def handle_event(self, event: 'Event') -> None:
        """Handle an event."""
        pass

    @abstractmethod
    def can_handle(self, event_type: 'EventType') -> bool:
        """Check if this handler can handle the event type."""
        pass


class IdentityProvider(ABC):
    """Authentication collaborator: resolves a session credential to an identity."""

    @abstractmethod
    def identify(self, credential: Optional[str]) -> Optional['Identity']:
        """Return the identity behind a credential, or None for anonymous."""
        pass
