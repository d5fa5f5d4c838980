"""Kubernetes operator for WebApp resources."""

__version__ = "0.1.0"
