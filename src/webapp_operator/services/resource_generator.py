""" Child resource generation for WebApp instances.

Generation is a pure function of the instance identity and its spec: the
same input always renders the same Deployment and Service descriptors, so
re-applying them to unchanged live objects is a no-op.
"""

import logging

import jinja2
import kubernetes
from kubernetes.client.exceptions import ApiException
import yaml

from webapp_operator.models.webapp import WebAppSpec

logger = logging.getLogger(__name__)

TEMPLATE_NAME = "webapp.yaml.j2"
DEFAULT_IMAGE = "nginx:1.27-alpine"
DEFAULT_PORT = 80


def owner_reference(body):
    """ Owner reference pointing at the WebApp, so children are garbage collected.
    """
    metadata = body["metadata"]
    return {
        "apiVersion": body.get("apiVersion")
        or f"{WebAppSpec._crd_group}/{WebAppSpec._crd_version}",
        "kind": body.get("kind") or WebAppSpec._crd_kind,
        "name": metadata["name"],
        "uid": metadata["uid"],
        "controller": True,
        "blockOwnerDeletion": True,
    }


class ResourceGenerator:
    """Render the child descriptors of a WebApp from a Jinja2 template."""

    def __init__(self, image=DEFAULT_IMAGE, port=DEFAULT_PORT, loader=None):
        self.image = image
        self.port = int(port)
        self.env = jinja2.Environment(
            loader=loader or jinja2.PackageLoader("webapp_operator", "templates"),
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=jinja2.StrictUndefined,
        )

    def render(self, name, namespace, spec):
        """ Render the manifest stream for one WebApp.

        Args:
            name: WebApp name (children share it)
            namespace: WebApp namespace
            spec: validated WebAppSpec

        Returns:
            str: multi-document YAML
        """
        template = self.env.get_template(TEMPLATE_NAME)
        return template.render(
            name=name,
            namespace=namespace,
            language=spec.language,
            replicas=spec.replicas,
            theme=spec.theme,
            image=self.image,
            port=self.port,
        )

    def build(self, body):
        """ Build the full descriptor set for a WebApp body.

        Nothing is written to the cluster here; callers apply the returned
        list only once it is complete.

        Raises:
            pydantic.ValidationError: if the spec does not match the schema
            jinja2.TemplateError, yaml.YAMLError: if rendering fails
        """
        metadata = body["metadata"]
        spec = WebAppSpec.model_validate(dict(body.get("spec") or {}))
        rendered = self.render(
            metadata["name"], metadata.get("namespace") or "default", spec
        )

        owner_ref = owner_reference(body) if metadata.get("uid") else None
        resources = []
        for resource in yaml.safe_load_all(rendered):
            if resource is None:
                continue
            if owner_ref:
                resource.setdefault("metadata", {})["ownerReferences"] = [dict(owner_ref)]
            resources.append(resource)

        return resources


class ResourceApplier:
    """Create or patch rendered descriptors through the Kubernetes API."""

    def __init__(self, apps_api=None, core_api=None):
        self.apps_api = apps_api or kubernetes.client.AppsV1Api()
        self.core_api = core_api or kubernetes.client.CoreV1Api()

    def _operations(self, kind):
        if kind == "Deployment":
            return (
                self.apps_api.read_namespaced_deployment,
                self.apps_api.patch_namespaced_deployment,
                self.apps_api.create_namespaced_deployment,
            )
        if kind == "Service":
            return (
                self.core_api.read_namespaced_service,
                self.core_api.patch_namespaced_service,
                self.core_api.create_namespaced_service,
            )
        raise ValueError(f"Unsupported resource kind: {kind}")

    def apply(self, resources):
        """ Apply every descriptor in order.

        Returns:
            list of dicts with kind, name and status ("created" or "updated")
        """
        # Resolve every kind up front so an unsupported one fails before any write.
        plan = [(resource, self._operations(resource["kind"])) for resource in resources]

        results = []
        for resource, operations in plan:
            results.append(self._apply_one(resource, *operations))
        return results

    def _apply_one(self, resource, read, patch, create):
        kind = resource["kind"]
        name = resource["metadata"]["name"]
        namespace = resource["metadata"]["namespace"]

        try:
            read(name=name, namespace=namespace)
        except ApiException as e:
            if e.status != 404:
                logger.error(f"Failed to read {kind} {namespace}/{name}: {e}")
                raise
            try:
                create(namespace=namespace, body=resource)
                logger.info(f"Created {kind}: {namespace}/{name}")
                return {"kind": kind, "name": name, "status": "created"}
            except ApiException as e:
                if e.status != 409:
                    logger.error(f"Failed to create {kind} {namespace}/{name}: {e}")
                    raise
                logger.info(f"{kind} {namespace}/{name} already exists, patching")

        patch(name=name, namespace=namespace, body=resource)
        logger.info(f"Updated {kind}: {namespace}/{name}")
        return {"kind": kind, "name": name, "status": "updated"}
