""" Admission decisions and their AdmissionReview rendering.
"""

import base64
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class AdmissionResult:
    """Outcome of one mutate or validate pass.

    ``patch`` is a merge-style patch (nested dicts, lists replaced whole)
    describing the mutation, if any.
    """

    allowed: bool
    code: Optional[int] = None
    message: Optional[str] = None
    violations: List[str] = field(default_factory=list)
    patch: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def approve(cls, patch=None):
        return cls(allowed=True, patch=dict(patch or {}))

    @classmethod
    def deny(cls, message, code, violations=None):
        return cls(
            allowed=False, code=code, message=message, violations=list(violations or [])
        )

    def describe(self):
        """Single-line message combining the summary and every violation."""
        if not self.violations:
            return self.message or ""
        return f"{self.message}: {'; '.join(self.violations)}"

    def json_patch(self, body):
        """Translate ``patch`` into RFC 6902 operations against ``body``."""
        return _json_patch_ops(self.patch, body or {}, "")

    def to_response(self, uid, body=None):
        """Render an ``admission.k8s.io/v1`` AdmissionReview response."""
        response = {"uid": uid, "allowed": self.allowed}

        if self.allowed:
            ops = self.json_patch(body)
            if ops:
                response["patchType"] = "JSONPatch"
                response["patch"] = base64.b64encode(
                    json.dumps(ops).encode("utf-8")
                ).decode("ascii")
        else:
            response["status"] = {"code": self.code, "message": self.describe()}
            if self.violations:
                response["warnings"] = list(self.violations)

        return {
            "apiVersion": "admission.k8s.io/v1",
            "kind": "AdmissionReview",
            "response": response,
        }


def _escape(key):
    return str(key).replace("~", "~0").replace("/", "~1")


def _json_patch_ops(patch, current, prefix):
    ops = []
    for key, value in patch.items():
        path = f"{prefix}/{_escape(key)}"
        existing = current.get(key) if isinstance(current, Mapping) else None
        if isinstance(value, Mapping) and isinstance(existing, Mapping):
            ops.extend(_json_patch_ops(value, existing, path))
        elif isinstance(current, Mapping) and key in current:
            ops.append({"op": "replace", "path": path, "value": value})
        else:
            ops.append({"op": "add", "path": path, "value": value})
    return ops


def merge_into(target, patch):
    """Deep-merge a merge-style ``patch`` into ``target`` (e.g. a kopf.Patch)."""
    for key, value in patch.items():
        existing = target.get(key)
        if isinstance(value, Mapping) and isinstance(existing, dict):
            merge_into(existing, value)
        elif isinstance(value, Mapping):
            target[key] = dict(value)
        else:
            target[key] = value
    return target
