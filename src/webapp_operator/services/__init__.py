"""Business logic services for the WebApp operator."""

from . import ledger
from . import resource_generator
from . import status_reporter
from . import reconciler

__all__ = ["ledger", "resource_generator", "status_reporter", "reconciler"]
