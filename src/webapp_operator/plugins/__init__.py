"""Plugin system for the WebApp operator."""

from .base import HandlerBinding, PluginBase
from .registry import PluginRegistry

__all__ = ["HandlerBinding", "PluginBase", "PluginRegistry"]
