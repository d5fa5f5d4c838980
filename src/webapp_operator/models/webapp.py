"""WebApp CRD model."""

from pydantic import Field

from webapp_operator.crd.registry import CRDRegistry
from webapp_operator.crd.base import CRDSpec

LANGUAGES = ("english", "spanish")
THEMES = ("dark", "light")


@CRDRegistry.register(
    "application.pepr.dev", "v1alpha1", "WebApp", "webapps", short_names=["wa"]
)
class WebAppSpec(CRDSpec):
    """WebAppSpec defines the desired state of WebApp."""

    # Allowed values are enforced by the admission webhook, not by the schema,
    # so that every violation is reported back in a single response.
    language: str = Field(
        ..., description="Language of the web application (english or spanish)"
    )
    replicas: int = Field(..., description="Number of replicas for the deployment")
    theme: str = Field(
        ..., description="Color theme of the web application (dark or light)"
    )
