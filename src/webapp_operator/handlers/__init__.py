"""Handler modules for the WebApp operator."""

from . import webapp_handler
from . import pod_security_handler

__all__ = ["webapp_handler", "pod_security_handler"]
