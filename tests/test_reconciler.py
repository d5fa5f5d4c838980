import pytest

from conftest import FIXED_NOW, FailingGenerator, FakeApplier, FakeReporter, condition, make_webapp

from webapp_operator.services.ledger import ConditionLedger
from webapp_operator.services.reconciler import (
    CONFLICT,
    NO_ACTION,
    WebAppReconciler,
    should_deploy,
)
from webapp_operator.services.resource_generator import ResourceGenerator


def make_reconciler(reporter, applier, generator=None):
    return WebAppReconciler(
        generator=generator or ResourceGenerator(),
        applier=applier,
        reporter=reporter,
        clock=lambda: FIXED_NOW,
    )


def with_status(body, outcome_snapshot):
    body = dict(body)
    body["status"] = {"conditions": outcome_snapshot}
    return body


@pytest.mark.parametrize(
    "generation,conditions,expected",
    [
        (1, [], True),
        (2, [condition("Ready", "Reconciled", 1)], True),
        (2, [condition("Failed", "Could not reconcile", 1)], True),
        (2, [condition("Ready", "Reconciled", 2)], False),
        (2, [condition("Failed", "Could not reconcile", 2)], False),
        (3, [condition("Pending", "Processing", 2)], False),
        (3, [condition("Ready", "Processing", 2)], False),
    ],
)
def test_guard(generation, conditions, expected):
    assert should_deploy(generation, ConditionLedger(conditions)) is expected


@pytest.mark.asyncio
async def test_new_generation_goes_pending_then_ready(reporter, applier):
    body = make_webapp(generation=2, conditions=[condition("Ready", "Reconciled", 1)])

    outcome = await make_reconciler(reporter, applier).reconcile(body)

    assert outcome.state == "Ready"
    assert [(c.status, c.reason, c.observedGeneration) for c in outcome.appended] == [
        ("Pending", "Processing", 2),
        ("Ready", "Reconciled", 2),
    ]
    assert reporter.calls == [
        ("status", ["Ready", "Pending"]),
        ("event", "Pending"),
        ("status", ["Ready", "Pending", "Ready"]),
        ("event", "Reconciled"),
    ]
    assert all(e["reason"] == "InstanceCreatedOrUpdated" for e in reporter.events)
    assert len(applier.applied) == 1


@pytest.mark.asyncio
async def test_second_run_for_same_generation_is_noop(reporter, applier):
    reconciler = make_reconciler(reporter, applier)
    body = make_webapp(generation=1)

    await reconciler.reconcile(body)
    persisted = with_status(body, reporter.snapshots[-1])
    calls_before = list(reporter.calls)

    outcome = await reconciler.reconcile(persisted)
    again = await reconciler.reconcile(persisted)

    assert outcome.state == NO_ACTION
    assert again.state == NO_ACTION
    assert outcome.appended == []
    assert reporter.calls == calls_before
    assert len(applier.applied) == 1


@pytest.mark.asyncio
async def test_pending_instance_is_not_reentered(reporter, applier):
    body = make_webapp(generation=3, conditions=[condition("Pending", "Processing", 2)])

    outcome = await make_reconciler(reporter, applier).reconcile(body)

    assert outcome.state == NO_ACTION
    assert reporter.calls == []
    assert applier.applied == []


@pytest.mark.asyncio
async def test_generator_failure_records_failed(reporter, applier):
    body = make_webapp(generation=4, conditions=[condition("Ready", "Reconciled", 3)])
    generator = FailingGenerator(ValueError("template exploded"))

    outcome = await make_reconciler(reporter, applier, generator).reconcile(body)

    assert outcome.state == "Failed"
    assert isinstance(outcome.error, ValueError)
    assert [(c.status, c.reason, c.observedGeneration) for c in outcome.appended] == [
        ("Pending", "Processing", 4),
        ("Failed", "Could not reconcile", 4),
    ]
    assert applier.applied == []
    assert [m for kind, m in reporter.calls if kind == "event"] == ["Pending", "Failed"]


@pytest.mark.asyncio
async def test_apply_failure_persists_accumulated_ledger(reporter):
    applier = FakeApplier(error=RuntimeError("api server unavailable"))
    body = make_webapp(generation=2, conditions=[condition("Ready", "Reconciled", 1)])

    outcome = await make_reconciler(reporter, applier).reconcile(body)

    assert outcome.state == "Failed"
    assert [c["status"] for c in reporter.snapshots[-1]] == ["Ready", "Pending", "Failed"]
    assert "Ready" not in [c.status for c in outcome.appended]


@pytest.mark.asyncio
async def test_failed_generation_waits_for_new_generation(reporter):
    failing = make_reconciler(reporter, FakeApplier(error=RuntimeError("boom")))
    body = make_webapp(generation=1)

    await failing.reconcile(body)
    persisted = with_status(body, reporter.snapshots[-1])

    assert (await failing.reconcile(persisted)).state == NO_ACTION

    applier = FakeApplier()
    bumped = dict(persisted, metadata=dict(persisted["metadata"], generation=2))
    outcome = await make_reconciler(reporter, applier).reconcile(bumped)

    assert outcome.state == "Ready"
    assert outcome.appended[-1].observedGeneration == 2


@pytest.mark.asyncio
async def test_status_write_failure_does_not_abort_cycle(applier):
    reporter = FakeReporter(status_ok=False)

    outcome = await make_reconciler(reporter, applier).reconcile(make_webapp())

    assert outcome.state == "Ready"
    assert [m for kind, m in reporter.calls if kind == "event"] == ["Pending", "Reconciled"]


@pytest.mark.asyncio
async def test_edit_scales_and_rethemes(reporter, applier):
    reconciler = make_reconciler(reporter, applier)
    body = make_webapp(generation=1, spec={"language": "english", "replicas": 1, "theme": "light"})
    await reconciler.reconcile(body)

    edited = with_status(body, reporter.snapshots[-1])
    edited["metadata"] = dict(edited["metadata"], generation=2)
    edited["spec"] = {"language": "english", "replicas": 5, "theme": "dark"}

    outcome = await reconciler.reconcile(edited)

    assert outcome.state == "Ready"
    deployment = next(r for r in outcome.resources if r["kind"] == "Deployment")
    assert deployment["spec"]["replicas"] == 5
    assert deployment["metadata"]["labels"]["webapp.pepr.dev/theme"] == "dark"
    assert [c["status"] for c in reporter.snapshots[-1]] == ["Pending", "Ready", "Pending", "Ready"]


@pytest.mark.asyncio
async def test_only_pending_write_is_version_checked(reporter, applier):
    body = make_webapp(generation=2, resource_version="481")

    await make_reconciler(reporter, applier).reconcile(body)

    assert reporter.versions == ["481", None]


@pytest.mark.asyncio
async def test_conflicting_pending_write_deploys_nothing(applier):
    reporter = FakeReporter(conflict=True)
    body = make_webapp(generation=2, resource_version="481")

    outcome = await make_reconciler(reporter, applier).reconcile(body)

    assert outcome.state == CONFLICT
    assert outcome.appended == []
    assert applier.applied == []
    assert reporter.calls == []
