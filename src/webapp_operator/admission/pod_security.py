""" Pod security rule: no privilege escalation, no privileged containers.

Mutation supplies ``allowPrivilegeEscalation: false`` only to containers that
made no explicit request either way; a container asking for elevated
privileges is left untouched and then denied by validation.

Validation does not assume mutation ran first. An unset
``allowPrivilegeEscalation`` counts as true, which is the Kubernetes default.
"""

import copy
import logging

from webapp_operator.admission.result import AdmissionResult

logger = logging.getLogger(__name__)

CONTAINER_FIELDS = ("containers", "initContainers", "ephemeralContainers")

# Kubernetes accepts the capability with or without the CAP_ prefix.
RAISED_CAPABILITIES = ("CAP_SYS_ADMIN", "SYS_ADMIN")

DENY_MESSAGE = "Privilege escalation is disallowed"
DENY_CODE = 403


def iter_containers(pod):
    """ Yield ``(field, index, container)`` for every container of a pod.
    """
    spec = pod.get("spec") or {}
    for field in CONTAINER_FIELDS:
        for index, container in enumerate(spec.get(field) or []):
            yield field, index, container


def _security_context(container):
    return container.get("securityContext") or {}


def raises_privileges(container):
    added = (_security_context(container).get("capabilities") or {}).get("add") or []
    return any(cap in RAISED_CAPABILITIES for cap in added)


def needs_default(container):
    """ True when the container made no request that mutation must respect.
    """
    context = _security_context(container)
    return (
        context.get("allowPrivilegeEscalation") is None
        and not context.get("privileged")
        and not raises_privileges(container)
    )


def escalates(container):
    context = _security_context(container)
    allow = context.get("allowPrivilegeEscalation")
    if allow is None:
        allow = True
    return bool(allow) or bool(context.get("privileged"))


def mutate_pod(body):
    """ Default ``allowPrivilegeEscalation`` to false where it is safe to.
    """
    spec = body.get("spec") or {}
    patch = {}

    for field in CONTAINER_FIELDS:
        containers = copy.deepcopy(list(spec.get(field) or []))
        changed = False
        for container in containers:
            if needs_default(container):
                context = dict(container.get("securityContext") or {})
                context["allowPrivilegeEscalation"] = False
                container["securityContext"] = context
                changed = True
        if changed:
            patch[field] = containers

    if not patch:
        return AdmissionResult.approve()
    return AdmissionResult.approve({"spec": patch})


def validate_pod(body):
    """ Deny with 403 if any container may escalate or runs privileged.
    """
    violations = [
        container.get("name") for _, _, container in iter_containers(body)
        if escalates(container)
    ]
    if violations:
        metadata = body.get("metadata") or {}
        name = metadata.get("name") or metadata.get("generateName")
        logger.info(f"Denying pod {name}: escalating containers {violations}")
        return AdmissionResult.deny(DENY_MESSAGE, DENY_CODE)

    return AdmissionResult.approve()
