"""Base classes for CRD specifications."""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, List
from datetime import datetime


class CRDMetadata(BaseModel):
    """Standard Kubernetes metadata for CRDs."""

    name: str
    namespace: Optional[str] = None
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)


class CRDCondition(BaseModel):
    """One entry of a resource's condition ledger.

    Entries are never mutated once they have been appended.
    """

    status: str  # Pending, Ready, Failed
    reason: str
    observedGeneration: Optional[int] = None
    lastTransitionTime: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)


class CRDStatus(BaseModel):
    """Base class for all CRD status objects."""

    conditions: List[CRDCondition] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")


class CRDSpec(BaseModel):
    """Base class for all CRD spec objects."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)
