import kopf
import pytest

from conftest import make_webapp

from webapp_operator.admission.webapp import ADMISSION_ANNOTATION
from webapp_operator.handlers import pod_security_handler, webapp_handler
from webapp_operator.plugins.base import HandlerBinding, PluginBase
from webapp_operator.plugins.registry import PluginRegistry
from webapp_operator.services.reconciler import CONFLICT, NO_ACTION, ReconcileOutcome

WEBAPPS = "application.pepr.dev/v1alpha1/webapps"


class DuplicatePodPlugin(PluginBase):
    name = "duplicate"
    version = "0.0.1"
    description = "binds a pod validator a second time"

    def handler_bindings(self):
        return [HandlerBinding(("v1", "pods"), "validate", pod_security_handler.validate)]


@pytest.fixture
def registry():
    registry = PluginRegistry()
    assert registry.discover_plugins() == 2
    return registry


def test_builtin_plugins_are_discovered(registry):
    assert sorted(registry.list_plugin_names()) == ["pod-security", "webapps"]
    metadata = {m["name"]: m for m in registry.get_plugins_metadata()}
    assert metadata["webapps"]["models"] == ["WebAppSpec"]


def test_handler_table_is_resolved_once(registry):
    assert all(registry.initialise_all_plugins().values())

    handlers = registry.register_all_handlers(kopf_registry=kopf.OperatorRegistry())

    assert sorted(handlers) == [
        (WEBAPPS, "create"),
        (WEBAPPS, "mutate"),
        (WEBAPPS, "resume"),
        (WEBAPPS, "update"),
        (WEBAPPS, "validate"),
        ("v1/pods", "mutate"),
        ("v1/pods", "validate"),
    ]
    assert handlers[(WEBAPPS, "validate")].fn is webapp_handler.validate
    assert handlers[(WEBAPPS, "create")].fn is handlers[(WEBAPPS, "update")].fn


def test_duplicate_binding_is_ignored(registry):
    registry.register_plugin(DuplicatePodPlugin())
    registry.initialise_all_plugins()

    handlers = registry.register_all_handlers(kopf_registry=kopf.OperatorRegistry())

    assert handlers[("v1/pods", "validate")].options == {
        "id": "pod-security-validate",
        "operations": ["CREATE", "UPDATE"],
    }


def test_uninitialised_plugins_bind_nothing(registry):
    assert registry.register_all_handlers(kopf_registry=kopf.OperatorRegistry()) == {}


def test_duplicate_plugin_names_are_rejected(registry):
    assert registry.register_plugin(DuplicatePodPlugin()) is True
    assert registry.register_plugin(DuplicatePodPlugin()) is False


def test_webapp_validate_handler_raises_admission_error():
    warnings = []
    body = make_webapp(spec={"language": "english", "replicas": 0, "theme": "neon"})

    with pytest.raises(kopf.AdmissionError) as exc_info:
        webapp_handler.validate(body=body, warnings=warnings)

    assert exc_info.value.code == 422
    assert warnings == [
        "replicas must be greater than 0",
        "theme must be either 'dark' or 'light'",
    ]


def test_webapp_mutate_handler_fills_kopf_patch():
    patch = kopf.Patch()

    webapp_handler.mutate(body=make_webapp(), patch=patch)

    assert "pepr.dev/latest-admission-pass" in patch["metadata"]["annotations"]


def test_pod_validate_handler_uses_403():
    pod = {"metadata": {"name": "p"}, "spec": {"containers": [{"name": "c"}]}}

    with pytest.raises(kopf.AdmissionError) as exc_info:
        pod_security_handler.validate(body=pod)

    assert exc_info.value.code == 403
    assert str(exc_info.value) == "Privilege escalation is disallowed"


def test_pod_mutate_handler_then_validate_passes():
    pod = {"metadata": {"name": "p"}, "spec": {"containers": [{"name": "c"}]}}
    patch = kopf.Patch()

    pod_security_handler.mutate(body=pod, patch=patch)

    assert patch["spec"]["containers"][0]["securityContext"] == {"allowPrivilegeEscalation": False}
    pod_security_handler.validate(body={**pod, "spec": patch["spec"]})


class RecordingReconciler:
    def __init__(self, state=NO_ACTION):
        self.state = state
        self.bodies = []

    async def reconcile(self, body):
        self.bodies.append(body)
        return ReconcileOutcome(state=self.state)


@pytest.mark.asyncio
async def test_reconcile_handler_delegates_to_reconciler():
    reconciler = RecordingReconciler()
    handler = webapp_handler.make_reconcile_handler(reconciler)
    body = make_webapp()

    await handler(body=body, patch=kopf.Patch(), logger=None)

    assert reconciler.bodies == [body]


@pytest.mark.asyncio
async def test_reconcile_handler_retries_after_status_conflict():
    handler = webapp_handler.make_reconcile_handler(RecordingReconciler(state=CONFLICT))

    with pytest.raises(kopf.TemporaryError):
        await handler(body=make_webapp(), patch=kopf.Patch(), logger=None)


def test_admission_stamp_is_left_out_of_the_diff_base():
    storage = webapp_handler.diffbase_storage()
    stamped = make_webapp(annotations={ADMISSION_ANNOTATION: "2026-10-19T12:00:00+00:00"})
    restamped = make_webapp(annotations={ADMISSION_ANNOTATION: "2026-10-19T12:05:00+00:00"})

    essence = storage.build(body=kopf.Body(stamped))

    assert essence == storage.build(body=kopf.Body(restamped))
    assert ADMISSION_ANNOTATION not in essence.get("metadata", {}).get("annotations", {})


def test_diff_base_still_sees_spec_and_other_annotation_changes():
    storage = webapp_handler.diffbase_storage()
    stamped = make_webapp(annotations={ADMISSION_ANNOTATION: "2026-10-19T12:00:00+00:00"})
    scaled = make_webapp(
        spec={"language": "english", "replicas": 5, "theme": "light"},
        annotations={ADMISSION_ANNOTATION: "2026-10-19T12:05:00+00:00"},
    )
    labelled = make_webapp(
        annotations={ADMISSION_ANNOTATION: "2026-10-19T12:00:00+00:00", "team": "web"}
    )

    essence = storage.build(body=kopf.Body(stamped))

    assert storage.build(body=kopf.Body(scaled)) != essence
    assert storage.build(body=kopf.Body(labelled)) != essence
