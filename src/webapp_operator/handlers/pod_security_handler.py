"""Kopf admission handlers enforcing the pod security rule."""

import kopf

from webapp_operator.admission.pod_security import mutate_pod, validate_pod
from webapp_operator.admission.result import merge_into


def mutate(body, patch, **kwargs):
    result = mutate_pod(body)
    merge_into(patch, result.patch)


def validate(body, **kwargs):
    result = validate_pod(body)
    if not result.allowed:
        raise kopf.AdmissionError(result.describe(), code=result.code)
