"""Base plugin architecture for the WebApp operator."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Tuple
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HandlerBinding:
    """One ``(resource, event) -> handler`` entry contributed by a plugin.

    ``event`` is one of create, update, resume, mutate, validate. ``options``
    are passed through to the matching ``kopf.on`` decorator.
    """

    resource: Tuple[str, ...]
    event: str
    fn: Callable
    options: Dict[str, Any] = field(default_factory=dict)

    @property
    def key(self):
        return ("/".join(self.resource), self.event)


class PluginBase(ABC):
    """Base class for all operator plugins."""

    def __init__(self):
        self._initialised = False
        self._models_registered = False

    @property
    @abstractmethod
    def name(self):
        """Unique name for this plugin."""
        pass

    @property
    @abstractmethod
    def version(self):
        """Plugin version."""
        pass

    @property
    @abstractmethod
    def description(self):
        """Human-readable description of what this plugin does."""
        pass

    @property
    def models(self):
        """Return list of CRD models this plugin provides."""
        return []

    def initialise(self):
        """Initialise the plugin. Called once during operator startup.

        Returns:
            bool: True if initialisation successful, False otherwise
        """
        if self._initialised:
            logger.warning(f"Plugin {self.name} already initialised")
            return True

        try:
            logger.info(f"Initialising plugin: {self.name} v{self.version}")

            if not self._models_registered:
                self._register_models()
                self._models_registered = True

            self._initialise_plugin()

            self._initialised = True
            logger.info(f"Plugin {self.name} initialised successfully")
            return True

        except Exception as e:
            logger.error(f"Failed to initialise plugin {self.name}: {e}")
            return False

    def _register_models(self):
        """Check this plugin's models were registered with the CRD registry."""
        for model in self.models:
            if not hasattr(model, "_crd_group"):
                logger.warning(
                    f"Model {model.__name__} not properly decorated with @CRDRegistry.register"
                )
                continue

            logger.debug(f"Model {model.__name__} registered by plugin {self.name}")

    def _initialise_plugin(self):
        """Override this method for custom plugin initialization logic."""
        pass

    def shutdown(self):
        """Cleanup plugin resources. Called during operator shutdown."""
        if not self._initialised:
            return

        try:
            logger.info(f"Shutting down plugin: {self.name}")
            self._shutdown_plugin()
            self._initialised = False
        except Exception as e:
            logger.error(f"Error shutting down plugin {self.name}: {e}")

    def _shutdown_plugin(self):
        """Override this method for custom plugin shutdown logic."""
        pass

    @abstractmethod
    def handler_bindings(self):
        """Return the list of HandlerBinding entries this plugin serves.

        Only called after a successful ``initialise``.
        """
        pass

    def get_metadata(self):
        """Get plugin metadata."""
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "models": [model.__name__ for model in self.models],
        }
