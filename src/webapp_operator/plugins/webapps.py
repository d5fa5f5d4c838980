"""WebApps plugin: admission and reconciliation of WebApp resources."""

import logging
import os

from .base import HandlerBinding, PluginBase

logger = logging.getLogger(__name__)

ADMISSION_OPERATIONS = ["CREATE", "UPDATE"]


class WebAppsPlugin(PluginBase):
    """Plugin for the WebApp CRD."""

    def __init__(self):
        super().__init__()
        self.image = os.getenv("WEBAPP_IMAGE", "nginx:1.27-alpine")
        self.port = int(os.getenv("WEBAPP_PORT", "80"))
        self.reconciler = None

    @property
    def name(self):
        return "webapps"

    @property
    def version(self):
        return "1.0.0"

    @property
    def description(self):
        return "Validates WebApps and reconciles them into a Deployment and a Service"

    @property
    def models(self):
        from webapp_operator.models.webapp import WebAppSpec

        return [WebAppSpec]

    def _initialise_plugin(self):
        """Build the reconciler and its Kubernetes collaborators."""
        from webapp_operator.services.reconciler import WebAppReconciler
        from webapp_operator.services.resource_generator import (
            ResourceApplier,
            ResourceGenerator,
        )
        from webapp_operator.services.status_reporter import StatusReporter

        self.reconciler = WebAppReconciler(
            generator=ResourceGenerator(image=self.image, port=self.port),
            applier=ResourceApplier(),
            reporter=StatusReporter(),
        )
        logger.info(f"WebApps plugin using image {self.image} on port {self.port}")

    def handler_bindings(self):
        from webapp_operator.handlers import webapp_handler
        from webapp_operator.models.webapp import WebAppSpec

        resource = (WebAppSpec._crd_group, WebAppSpec._crd_version, WebAppSpec._crd_plural)
        reconcile = webapp_handler.make_reconcile_handler(self.reconciler)

        return [
            HandlerBinding(
                resource,
                "mutate",
                webapp_handler.mutate,
                {"id": "webapp-mutate", "operations": ADMISSION_OPERATIONS},
            ),
            HandlerBinding(
                resource,
                "validate",
                webapp_handler.validate,
                {"id": "webapp-validate", "operations": ADMISSION_OPERATIONS},
            ),
            HandlerBinding(resource, "create", reconcile, {"id": "reconcile"}),
            HandlerBinding(resource, "update", reconcile, {"id": "reconcile"}),
            HandlerBinding(resource, "resume", reconcile, {"id": "reconcile"}),
        ]
