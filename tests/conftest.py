# --- test import path bootstrap (src/ layout) ---
import sys as _sys
from pathlib import Path as _Path

_SRC = _Path(__file__).resolve().parents[1] / "src"
if _SRC.is_dir():
    _p = str(_SRC)
    if _p not in _sys.path:
        _sys.path.insert(0, _p)
# --- end bootstrap ---

import copy
import datetime

import pytest

from webapp_operator.services.status_reporter import EVENT_REASON, StatusConflict

FIXED_NOW = datetime.datetime(2026, 10, 19, 12, 0, 0, tzinfo=datetime.timezone.utc)


def make_webapp(
    spec=None,
    generation=1,
    conditions=None,
    name="demo",
    namespace="apps",
    annotations=None,
    resource_version=None,
):
    body = {
        "apiVersion": "application.pepr.dev/v1alpha1",
        "kind": "WebApp",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "uid": "0b6f6c9e-1111-2222-3333-444455556666",
            "generation": generation,
        },
        "spec": spec
        if spec is not None
        else {"language": "english", "replicas": 1, "theme": "light"},
    }
    if annotations is not None:
        body["metadata"]["annotations"] = dict(annotations)
    if resource_version is not None:
        body["metadata"]["resourceVersion"] = resource_version
    if conditions is not None:
        body["status"] = {"conditions": copy.deepcopy(conditions)}
    return body


def condition(status, reason, observed_generation):
    return {
        "status": status,
        "reason": reason,
        "observedGeneration": observed_generation,
        "lastTransitionTime": "2026-10-18T08:00:00Z",
    }


class FakeReporter:
    """Records status patches and events in call order."""

    def __init__(self, status_ok=True, conflict=False):
        self.status_ok = status_ok
        self.conflict = conflict
        self.calls = []
        self.versions = []
        self.snapshots = []
        self.events = []

    async def patch_status(self, name, namespace, ledger, resource_version=None):
        self.versions.append(resource_version)
        if self.conflict and resource_version:
            raise StatusConflict(f"{namespace}/{name}")
        snapshot = ledger.to_status()["conditions"]
        self.snapshots.append(snapshot)
        self.calls.append(("status", [c["status"] for c in snapshot]))
        return self.status_ok

    def emit_event(self, body, message, reason=EVENT_REASON, type="Normal"):
        self.events.append({"reason": reason, "message": message, "type": type})
        self.calls.append(("event", message))
        return True


class FakeApplier:
    def __init__(self, error=None):
        self.error = error
        self.applied = []

    def apply(self, resources):
        if self.error is not None:
            raise self.error
        self.applied.append(resources)
        return [{"kind": r["kind"], "name": r["metadata"]["name"], "status": "created"} for r in resources]


class FailingGenerator:
    def __init__(self, error):
        self.error = error

    def build(self, body):
        raise self.error


@pytest.fixture
def reporter():
    return FakeReporter()


@pytest.fixture
def applier():
    return FakeApplier()
