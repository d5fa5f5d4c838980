""" Admission rules for WebApp resources.

Both passes step aside while a reconciliation is in flight (the last
condition is Pending), so the operator's own writes and the sync tool's
periodic re-apply are never rejected mid-deployment.
"""

import logging

from webapp_operator.admission.result import AdmissionResult
from webapp_operator.models.webapp import LANGUAGES, THEMES
from webapp_operator.services.ledger import ConditionLedger, utcnow

logger = logging.getLogger(__name__)

ADMISSION_ANNOTATION = "pepr.dev/latest-admission-pass"

DENY_MESSAGE = "Spec field is incorrect"
DENY_CODE = 422

LANGUAGE_VIOLATION = "language must be either 'english' or 'spanish'"
REPLICAS_VIOLATION = "replicas must be greater than 0"
THEME_VIOLATION = "theme must be either 'dark' or 'light'"


def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def spec_violations(spec):
    """ Return every rule the given spec breaks, in a fixed order.

    Args:
        spec: The ``spec`` mapping of a WebApp

    Returns:
        list of human-readable violation messages (empty when valid)
    """
    spec = spec or {}
    violations = []

    if spec.get("language") not in LANGUAGES:
        violations.append(LANGUAGE_VIOLATION)

    replicas = spec.get("replicas")
    if not _is_number(replicas) or replicas < 1:
        violations.append(REPLICAS_VIOLATION)

    if spec.get("theme") not in THEMES:
        violations.append(THEME_VIOLATION)

    return violations


def mutate_webapp(body, now=None):
    """ Stamp the admission-pass annotation unless the instance is pending.
    """
    if ConditionLedger.from_body(body).is_pending():
        return AdmissionResult.approve()

    timestamp = (now or utcnow()).isoformat()
    return AdmissionResult.approve(
        {"metadata": {"annotations": {ADMISSION_ANNOTATION: timestamp}}}
    )


def validate_webapp(body):
    """ Approve a WebApp, or deny it with 422 listing every violated rule.
    """
    if ConditionLedger.from_body(body).is_pending():
        return AdmissionResult.approve()

    violations = spec_violations(body.get("spec"))
    if violations:
        name = (body.get("metadata") or {}).get("name")
        logger.info(f"Denying WebApp {name}: {violations}")
        return AdmissionResult.deny(DENY_MESSAGE, DENY_CODE, violations)

    return AdmissionResult.approve()
