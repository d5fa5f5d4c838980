""" Condition ledger for WebApp instances.

The ledger is the ordered list found at ``status.conditions``. It only ever
grows; the last entry describes the current state of the instance.
"""

import datetime
import logging

from webapp_operator.crd.base import CRDCondition

logger = logging.getLogger(__name__)

PENDING = "Pending"
READY = "Ready"
FAILED = "Failed"

PROCESSING = "Processing"
RECONCILED = "Reconciled"
COULD_NOT_RECONCILE = "Could not reconcile"

# Returned by ConditionLedger.last() when nothing has been recorded yet.
EMPTY_CONDITION = CRDCondition(status="", reason="")


def utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


class ConditionLedger:
    """Append-only view over an instance's ``status.conditions``."""

    def __init__(self, conditions=None):
        self._conditions = [
            c if isinstance(c, CRDCondition) else CRDCondition.model_validate(c)
            for c in conditions or []
        ]

    @classmethod
    def from_body(cls, body):
        """ Build a ledger from a full resource body (dict or kopf Body).
        """
        status = body.get("status") or {}
        return cls(status.get("conditions") or [])

    def __len__(self):
        return len(self._conditions)

    def __iter__(self):
        return iter(list(self._conditions))

    @property
    def conditions(self):
        return list(self._conditions)

    def last(self):
        """ Return the current condition, or EMPTY_CONDITION for an empty ledger.
        """
        if not self._conditions:
            return EMPTY_CONDITION
        return self._conditions[-1]

    def is_pending(self):
        return self.last().status == PENDING

    def is_in_flight(self):
        """ True while a deployment started by the operator has not finished.
        """
        last = self.last()
        return last.status == PENDING or last.reason == PROCESSING

    def append(self, status, reason, observed_generation, when=None):
        condition = CRDCondition(
            status=status,
            reason=reason,
            observedGeneration=observed_generation,
            lastTransitionTime=when or utcnow(),
        )
        self._conditions.append(condition)
        logger.debug(f"Appended condition {status}/{reason} (generation {observed_generation})")
        return condition

    def to_status(self):
        """ Render the ledger as a ``status`` stanza for a status patch.
        """
        return {
            "conditions": [
                c.model_dump(mode="json", exclude_none=True) for c in self._conditions
            ]
        }
