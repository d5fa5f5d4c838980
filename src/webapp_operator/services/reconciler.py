""" Reconciliation state machine for WebApp instances.

Every observed create/update runs ``WebAppReconciler.reconcile``. A deployment
starts only when the spec generation moved past the last recorded one and no
deployment is already in flight; the ledger then goes Pending -> Ready or
Pending -> Failed. A Failed instance stays Failed until a new generation
arrives. There is no timed retry.

The Pending write is checked against the resourceVersion the cycle started
from; if another writer got there first the cycle stops with Conflict before
anything is deployed.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from webapp_operator.crd.base import CRDCondition
from webapp_operator.services.ledger import (
    COULD_NOT_RECONCILE,
    FAILED,
    PENDING,
    PROCESSING,
    READY,
    RECONCILED,
    ConditionLedger,
    utcnow,
)
from webapp_operator.services.status_reporter import StatusConflict

logger = logging.getLogger(__name__)

NO_ACTION = "NoAction"
CONFLICT = "Conflict"


@dataclass(frozen=True)
class Result:
    """Outcome of one fallible reconciliation step."""

    ok: bool
    value: Any = None
    error: Optional[BaseException] = None

    @classmethod
    def success(cls, value=None):
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error):
        return cls(ok=False, error=error)


@dataclass
class ReconcileOutcome:
    """What a reconcile call did: NoAction, Conflict, Ready or Failed."""

    state: str
    generation: Optional[int] = None
    appended: List[CRDCondition] = field(default_factory=list)
    resources: List[dict] = field(default_factory=list)
    error: Optional[BaseException] = None


def should_deploy(generation, ledger):
    """ Decide whether a new deployment cycle may start.

    Args:
        generation: current ``metadata.generation``
        ledger: ConditionLedger of the instance

    Returns:
        bool
    """
    last = ledger.last()
    return generation != last.observedGeneration and not ledger.is_in_flight()


class WebAppReconciler:
    """Drives the condition ledger of a WebApp through one deployment cycle."""

    def __init__(self, generator, applier, reporter, clock=utcnow):
        self.generator = generator
        self.applier = applier
        self.reporter = reporter
        self.clock = clock

    async def generate(self, body):
        try:
            return Result.success(self.generator.build(body))
        except Exception as e:
            return Result.failure(e)

    async def apply(self, resources):
        try:
            return Result.success(await asyncio.to_thread(self.applier.apply, resources))
        except Exception as e:
            return Result.failure(e)

    async def deploy(self, body):
        """ Compute the full descriptor set, then apply it.
        """
        generated = await self.generate(body)
        if not generated.ok:
            return generated

        applied = await self.apply(generated.value)
        if not applied.ok:
            return applied

        return Result.success(generated.value)

    async def _transition(
        self, body, ledger, status, reason, generation, message, resource_version=None
    ):
        condition = ledger.append(status, reason, generation, self.clock())
        metadata = body["metadata"]
        await self.reporter.patch_status(
            metadata["name"], metadata.get("namespace"), ledger, resource_version
        )
        self.reporter.emit_event(body, message)
        return condition

    async def reconcile(self, body):
        """ Run one reconciliation cycle for a WebApp body.

        Returns:
            ReconcileOutcome
        """
        metadata = body["metadata"]
        name = metadata.get("name")
        generation = metadata.get("generation")
        ledger = ConditionLedger.from_body(body)

        if not should_deploy(generation, ledger):
            logger.debug(
                f"Skipping reconcile for {name}, generation has not changed or is pending."
            )
            return ReconcileOutcome(state=NO_ACTION, generation=generation)

        outcome = ReconcileOutcome(state=PENDING, generation=generation)
        try:
            pending = await self._transition(
                body,
                ledger,
                PENDING,
                PROCESSING,
                generation,
                "Pending",
                resource_version=metadata.get("resourceVersion"),
            )
        except StatusConflict:
            logger.info(f"Pending write for {name} conflicted, nothing was deployed.")
            return ReconcileOutcome(state=CONFLICT, generation=generation)
        outcome.appended.append(pending)

        deployed = await self.deploy(body)

        if deployed.ok:
            outcome.state = READY
            outcome.resources = deployed.value
            outcome.appended.append(
                await self._transition(body, ledger, READY, RECONCILED, generation, "Reconciled")
            )
            logger.info(f"Reconciled {name} at generation {generation}")
        else:
            logger.error(f"Deployment failed for {name}: {deployed.error}")
            outcome.state = FAILED
            outcome.error = deployed.error
            outcome.appended.append(
                await self._transition(
                    body, ledger, FAILED, COULD_NOT_RECONCILE, generation, "Failed"
                )
            )

        return outcome
