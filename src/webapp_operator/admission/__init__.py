"""Admission rules for WebApps and workload pods."""

from .result import AdmissionResult
from .webapp import mutate_webapp, validate_webapp
from .pod_security import mutate_pod, validate_pod

__all__ = [
    "AdmissionResult",
    "mutate_webapp",
    "validate_webapp",
    "mutate_pod",
    "validate_pod",
]
