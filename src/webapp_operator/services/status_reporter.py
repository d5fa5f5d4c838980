""" Status and event reporting for WebApp instances.

Both operations are best-effort: failures are logged and swallowed so a
transient API error never aborts a reconciliation half way through. The one
exception is a version-checked status write that loses to a concurrent
writer, which raises StatusConflict.
"""

import asyncio
import logging

import kopf
import kubernetes
from kubernetes.client.exceptions import ApiException

from webapp_operator.models.webapp import WebAppSpec

logger = logging.getLogger(__name__)

EVENT_REASON = "InstanceCreatedOrUpdated"


class StatusConflict(Exception):
    """A version-checked status write lost to a concurrent writer."""


class StatusReporter:
    """Writes the condition ledger back to a WebApp and posts lifecycle events."""

    def __init__(self, custom_api=None, post_event=None):
        self.custom_api = custom_api or kubernetes.client.CustomObjectsApi()
        self.post_event = post_event or kopf.event

    async def patch_status(self, name, namespace, ledger, resource_version=None):
        """ Patch ``status.conditions`` through the status subresource.

        Args:
            name: WebApp name
            namespace: WebApp namespace
            ledger: ConditionLedger holding the full, locally accumulated list
            resource_version: when set, the store rejects the write if the
                object changed since that version

        Returns:
            bool: True if the patch was accepted

        Raises:
            StatusConflict: if a version-checked write was rejected with 409
        """
        body = {"status": ledger.to_status()}
        if resource_version:
            body["metadata"] = {"resourceVersion": resource_version}

        try:
            await asyncio.to_thread(
                self.custom_api.patch_namespaced_custom_object_status,
                group=WebAppSpec._crd_group,
                version=WebAppSpec._crd_version,
                namespace=namespace,
                plural=WebAppSpec._crd_plural,
                name=name,
                body=body,
            )
            logger.debug(f"Patched status for {namespace}/{name} ({len(ledger)} conditions)")
            return True
        except ApiException as e:
            if e.status == 409 and resource_version:
                logger.warning(
                    f"Status of {namespace}/{name} changed since version {resource_version}"
                )
                raise StatusConflict(f"{namespace}/{name}") from e
            logger.error(f"Failed to update status for {namespace}/{name}: {e}")
            return False
        except Exception as e:
            logger.error(f"Failed to update status for {namespace}/{name}: {e}")
            return False

    def emit_event(self, body, message, reason=EVENT_REASON, type="Normal"):
        """ Record a Kubernetes event against the WebApp.

        Returns:
            bool: True if the event was queued
        """
        try:
            self.post_event(body, type=type, reason=reason, message=message)
            return True
        except Exception as e:
            name = (body.get("metadata") or {}).get("name")
            logger.error(f"Failed to write event for {name}: {e}")
            return False
