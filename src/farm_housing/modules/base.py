"""
Base class for residency engine modules.

Modules are plug-ins that react to lifecycle events.
"""

from abc import ABC, abstractmethod


class EngineModule(ABC):
    """
    Base class for engine modules.

    A module:
    - Receives events from the Event Bus
    - Uses the document store for the data it needs
    - Keeps no ambient state beyond what it is given at attach time
    """

    @property
    @abstractmethod
    def id(self) -> str:
        """Unique identifier for this module type."""
        pass

    @abstractmethod
    def attach(self, bus, store) -> None:
        """
        Attach the module to the engine.

        Register event subscriptions and capture references to bus and store.

        Args:
            bus: EventBus instance
            store: DocumentStore instance
        """
        pass

    def detach(self) -> None:
        """
        Release subscriptions taken in attach().

        Default implementation does nothing.
        """
        pass
