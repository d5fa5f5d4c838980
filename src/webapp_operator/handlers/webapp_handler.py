"""Kopf handlers for WebApp admission and reconciliation."""

import logging

import kopf

from webapp_operator.admission.result import merge_into
from webapp_operator.admission.webapp import (
    ADMISSION_ANNOTATION,
    mutate_webapp,
    validate_webapp,
)
from webapp_operator.services.ledger import utcnow
from webapp_operator.services.reconciler import CONFLICT

logger = logging.getLogger(__name__)


def mutate(body, patch, **kwargs):
    """Admission: stamp the latest admission pass on the WebApp."""
    result = mutate_webapp(body, now=utcnow())
    merge_into(patch, result.patch)


def validate(body, warnings, **kwargs):
    """Admission: reject WebApps whose spec breaks any rule."""
    result = validate_webapp(body)
    if not result.allowed:
        warnings.extend(result.violations)
        raise kopf.AdmissionError(result.describe(), code=result.code)


def make_reconcile_handler(reconciler):
    """ Bind a WebAppReconciler into a kopf create/update/resume handler.
    """

    async def reconcile(body, **kwargs):
        outcome = await reconciler.reconcile(body)
        logger.debug(f"Reconcile outcome for {body['metadata'].get('name')}: {outcome.state}")
        if outcome.state == CONFLICT:
            raise kopf.TemporaryError("Status changed while claiming the deployment", delay=5)

    return reconcile


def diffbase_storage():
    """ Diff-base storage that leaves the admission-pass stamp out of the essence.

    The mutate pass re-stamps every admitted write, including kopf's own
    annotation patches, so the stamp must never count as a spec change.
    """
    return kopf.AnnotationsDiffBaseStorage(
        ignored_fields=[("metadata", "annotations", ADMISSION_ANNOTATION)]
    )
