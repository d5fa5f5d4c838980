"""Plugin registry for discovering and managing plugins."""

import importlib
import logging

import kopf

from .base import PluginBase

logger = logging.getLogger(__name__)

BUILTIN_PLUGINS = [
    "webapp_operator.plugins.webapps",
    "webapp_operator.plugins.pod_security",
]

KOPF_EVENTS = {
    "create": kopf.on.create,
    "update": kopf.on.update,
    "resume": kopf.on.resume,
    "mutate": kopf.on.mutate,
    "validate": kopf.on.validate,
}


class PluginRegistry:
    """Registry for discovering plugins and binding their handlers."""

    def __init__(self):
        self._plugins = {}
        self._handlers = {}

    def discover_plugins(self, modules=None):
        """Discover and load the built-in plugins.

        Args:
            modules: Module paths to load plugins from (defaults to BUILTIN_PLUGINS)

        Returns:
            int: Number of plugins discovered
        """
        logger.info("Discovering plugins...")

        loaded_count = 0
        for plugin_module in modules or BUILTIN_PLUGINS:
            try:
                module = importlib.import_module(plugin_module)

                # Look for plugin class in module
                for attr_name in dir(module):
                    attr = getattr(module, attr_name)
                    if (
                        isinstance(attr, type)
                        and issubclass(attr, PluginBase)
                        and attr is not PluginBase
                        and attr.__module__ == module.__name__
                    ):
                        if self.register_plugin(attr()):
                            loaded_count += 1
                        break

            except ImportError as e:
                logger.warning(f"Could not load builtin plugin {plugin_module}: {e}")
            except Exception as e:
                logger.error(f"Error loading builtin plugin {plugin_module}: {e}")

        logger.info(f"Discovered {loaded_count} plugins")
        return loaded_count

    def register_plugin(self, plugin):
        """Register a plugin instance.

        Returns:
            bool: True if registration successful, False otherwise
        """
        if not isinstance(plugin, PluginBase):
            logger.error(f"Plugin must inherit from PluginBase: {type(plugin)}")
            return False

        plugin_name = plugin.name

        if plugin_name in self._plugins:
            existing_version = self._plugins[plugin_name].version
            logger.warning(
                f"Plugin {plugin_name} already registered (existing: {existing_version}, new: {plugin.version})"
            )
            return False

        self._plugins[plugin_name] = plugin
        logger.debug(f"Registered plugin: {plugin_name} v{plugin.version}")
        return True

    def initialise_all_plugins(self):
        """Initialise all registered plugins.

        Returns:
            Dict[str, bool]: Map of plugin names to initialization success status
        """
        logger.info("Initializing all plugins...")

        results = {}
        for plugin_name, plugin in self._plugins.items():
            results[plugin_name] = plugin.initialise()
            if not results[plugin_name]:
                logger.error(f"Plugin {plugin_name} initialization failed")

        successful_count = sum(1 for success in results.values() if success)
        logger.info(
            f"Initialised {successful_count}/{len(self._plugins)} plugins successfully"
        )

        return results

    def register_all_handlers(self, kopf_registry=None):
        """Resolve the ``(resource, event) -> handler`` table and bind it to kopf.

        Args:
            kopf_registry: kopf.OperatorRegistry to bind into (defaults to kopf's global one)

        Returns:
            Dict mapping ``(resource, event)`` keys to HandlerBinding entries
        """
        logger.info("Registering handlers for all plugins...")

        for plugin_name, plugin in self._plugins.items():
            if not plugin._initialised:
                logger.warning(
                    f"Skipping handler registration for uninitialised plugin: {plugin_name}"
                )
                continue

            for binding in plugin.handler_bindings():
                if binding.key in self._handlers:
                    logger.warning(
                        f"Handler for {binding.key} already bound, ignoring the one from {plugin_name}"
                    )
                    continue

                decorator = KOPF_EVENTS[binding.event](
                    *binding.resource, registry=kopf_registry, **binding.options
                )
                decorator(binding.fn)
                self._handlers[binding.key] = binding
                logger.debug(f"Bound {binding.event} handler for {binding.key[0]} ({plugin_name})")

        return self.get_handlers()

    def shutdown_all_plugins(self):
        """Shutdown all plugins."""
        logger.info("Shutting down all plugins...")

        for plugin in self._plugins.values():
            plugin.shutdown()

    def get_plugin(self, name: str):
        """Get a plugin by name."""
        return self._plugins.get(name)

    def get_handlers(self):
        """Get the resolved handler table."""
        return self._handlers.copy()

    def list_plugin_names(self):
        """Get list of all plugin names."""
        return list(self._plugins.keys())

    def get_plugins_metadata(self):
        """Get metadata for all plugins."""
        return [plugin.get_metadata() for plugin in self._plugins.values()]
