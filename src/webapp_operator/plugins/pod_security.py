"""Pod security plugin: disallow privilege escalation in workload pods."""

import logging

from .base import HandlerBinding, PluginBase

logger = logging.getLogger(__name__)

POD_RESOURCE = ("v1", "pods")
ADMISSION_OPERATIONS = ["CREATE", "UPDATE"]


class PodSecurityPlugin(PluginBase):
    """Plugin for the fixed pod security rule."""

    @property
    def name(self):
        return "pod-security"

    @property
    def version(self):
        return "1.0.0"

    @property
    def description(self):
        return "Defaults allowPrivilegeEscalation to false and denies escalating pods"

    def handler_bindings(self):
        from webapp_operator.handlers import pod_security_handler

        return [
            HandlerBinding(
                POD_RESOURCE,
                "mutate",
                pod_security_handler.mutate,
                {"id": "pod-security-mutate", "operations": ADMISSION_OPERATIONS},
            ),
            HandlerBinding(
                POD_RESOURCE,
                "validate",
                pod_security_handler.validate,
                {"id": "pod-security-validate", "operations": ADMISSION_OPERATIONS},
            ),
        ]
