"""GitOps CRD management and generation system."""

import hashlib
import json
import logging
from pathlib import Path
import yaml

from .registry import CRDRegistry

logger = logging.getLogger(__name__)

# Status stanza shared by every CRD: an append-only condition ledger.
CONDITIONS_SCHEMA = {
    "type": "array",
    "description": "Conditions describing the current state",
    "items": {
        "type": "object",
        "properties": {
            "lastTransitionTime": {
                "type": "string",
                "format": "date-time",
                "description": "Last time the condition transitioned from one status to another",
            },
            "reason": {
                "type": "string",
                "description": "Programmatic identifier for the condition's last transition",
            },
            "status": {
                "type": "string",
                "description": "Status of the condition: Pending, Ready or Failed",
            },
            "observedGeneration": {
                "type": "integer",
                "description": ".metadata.generation the condition was set based upon",
            },
        },
        "required": ["lastTransitionTime", "reason", "status", "observedGeneration"],
    },
}


class OpenAPIConverter:
    """Convert pydantic schemas to OpenAPI v3 compatible schemas for CRDs."""

    @staticmethod
    def convert_schema(pydantic_schema):
        """Convert pydantic JSON schema to OpenAPI v3 schema for Kubernetes CRDs."""
        openapi_schema = OpenAPIConverter._convert_property(
            {"type": "object", **pydantic_schema}, pydantic_schema.get("$defs", {})
        )
        openapi_schema.pop("additionalProperties", None)
        if pydantic_schema.get("description"):
            openapi_schema["description"] = pydantic_schema["description"]
        return openapi_schema

    @staticmethod
    def _convert_property(prop_schema, defs):
        """Convert a single property schema."""
        if "$ref" in prop_schema:
            def_name = prop_schema["$ref"].replace("#/$defs/", "")
            if def_name in defs:
                return OpenAPIConverter._convert_property(defs[def_name], defs)

        # Optional[X] renders as anyOf [X, null]; the null branch is implied.
        if "anyOf" in prop_schema:
            branches = [b for b in prop_schema["anyOf"] if b.get("type") != "null"]
            if len(branches) == 1:
                merged = {k: v for k, v in prop_schema.items() if k != "anyOf"}
                return OpenAPIConverter._convert_property({**branches[0], **merged}, defs)

        prop_type = prop_schema.get("type")

        if prop_type == "array":
            converted = {"type": "array"}
            if "items" in prop_schema:
                converted["items"] = OpenAPIConverter._convert_property(
                    prop_schema["items"], defs
                )
        elif prop_type == "object":
            converted = {"type": "object"}
            if "properties" in prop_schema:
                converted["properties"] = {
                    name: OpenAPIConverter._convert_property(schema, defs)
                    for name, schema in prop_schema["properties"].items()
                }
            if "required" in prop_schema:
                converted["required"] = prop_schema["required"]
            converted["additionalProperties"] = True
        elif prop_type:
            converted = {"type": prop_type}
        else:
            converted = {"type": "object", "additionalProperties": True}

        for key in ("description", "default", "enum", "format"):
            if key in prop_schema:
                converted[key] = prop_schema[key]

        return converted


class CRDManager:
    """Manages CRD generation for GitOps workflows."""

    def __init__(self, output_dir=None):
        self.output_dir = Path(output_dir or "crds/generated")
        self.registry = CRDRegistry()
        self.converter = OpenAPIConverter()

    def generate_all_crds(self, force=False):
        """Generate CRDs only if models changed.

        Returns:
            bool: True if CRDs were generated/updated, False if no changes needed
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)

        self.registry.discover_models()
        current_hash = self._calculate_models_hash()
        hash_file = self.output_dir / ".models_hash"

        if not force and hash_file.exists():
            if hash_file.read_text().strip() == current_hash:
                logger.info("CRD models unchanged, skipping generation")
                return False

        logger.info("Generating CRDs from pydantic models...")

        models = self.registry.get_all_models()
        if not models:
            logger.warning("No CRD models found to generate")
            return False

        generated_files = []
        for model_key, model_info in models.items():
            try:
                crd_def = self._generate_crd_definition(model_info)
                filename = f"{crd_def['metadata']['name']}.yaml"

                with open(self.output_dir / filename, "w") as f:
                    yaml.dump(crd_def, f, default_flow_style=False, sort_keys=False)

                generated_files.append(filename)
                logger.info(f"Generated CRD: {filename}")

            except Exception as e:
                logger.error(f"Failed to generate CRD for {model_key}: {e}")
                raise

        self._generate_kustomization(generated_files)
        hash_file.write_text(current_hash)

        logger.info(f"Generated {len(generated_files)} CRD files")
        return True

    def _generate_crd_definition(self, model_info):
        """Generate a single CRD definition from model info."""
        model_class = model_info["model"]
        group = model_info["group"]
        plural = model_info["plural"]

        try:
            schema = model_class.model_json_schema()
        except Exception as e:
            raise ValueError(
                f"Failed to generate schema for {model_class.__name__}: {e}"
            )

        spec_schema = self.converter.convert_schema(schema)

        return {
            "apiVersion": "apiextensions.k8s.io/v1",
            "kind": "CustomResourceDefinition",
            "metadata": {"name": f"{plural}.{group}"},
            "spec": {
                "group": group,
                "names": {
                    "kind": model_info["kind"],
                    "plural": plural,
                    "singular": model_info["singular"],
                    "shortNames": model_info["short_names"],
                },
                "scope": model_info["scope"],
                "versions": [
                    {
                        "name": model_info["version"],
                        "served": True,
                        "storage": True,
                        "schema": {
                            "openAPIV3Schema": {
                                "type": "object",
                                "properties": {
                                    "spec": spec_schema,
                                    "status": {
                                        "type": "object",
                                        "description": f"{model_info['kind']}Status defines the observed state of {model_info['kind']}",
                                        "properties": {"conditions": CONDITIONS_SCHEMA},
                                        # kopf keeps its handler progress under status.kopf
                                        "x-kubernetes-preserve-unknown-fields": True,
                                    },
                                },
                                "required": ["spec"],
                            }
                        },
                        "subresources": {"status": {}},
                    }
                ],
            },
        }

    def _generate_kustomization(self, filenames):
        """Generate kustomization.yaml for all CRDs."""
        kustomization = {
            "apiVersion": "kustomize.config.k8s.io/v1beta1",
            "kind": "Kustomization",
            "resources": sorted(filenames),
        }

        with open(self.output_dir / "kustomization.yaml", "w") as f:
            yaml.dump(kustomization, f, default_flow_style=False)

        logger.info("Generated kustomization.yaml")

    def _calculate_models_hash(self):
        """Calculate hash of all model definitions for change detection."""
        models = self.registry.get_all_models()

        model_data = {}
        for model_key, model_info in sorted(models.items()):
            try:
                model_data[model_key] = {
                    "schema": model_info["model"].model_json_schema(),
                    "group": model_info["group"],
                    "version": model_info["version"],
                    "kind": model_info["kind"],
                    "scope": model_info["scope"],
                    "short_names": model_info["short_names"],
                }
            except Exception as e:
                logger.warning(f"Could not generate schema for {model_key}: {e}")
                continue

        model_json = json.dumps(model_data, sort_keys=True)
        return hashlib.sha256(model_json.encode()).hexdigest()

    def apply_crds_to_cluster(self):
        """Apply CRDs directly to the Kubernetes cluster (create or replace).

        Returns:
            bool: True if at least one CRD was applied
        """
        from kubernetes import client

        api_client = client.ApiextensionsV1Api()

        applied_count = 0
        for crd_name, crd_def in self.get_crds_as_dict().items():
            try:
                try:
                    existing = api_client.read_custom_resource_definition(crd_name)
                    crd_def["metadata"]["resourceVersion"] = (
                        existing.metadata.resource_version
                    )
                    api_client.replace_custom_resource_definition(
                        name=crd_name, body=crd_def
                    )
                    logger.info(f"Updated CRD: {crd_name}")
                except client.exceptions.ApiException as e:
                    if e.status != 404:
                        raise
                    api_client.create_custom_resource_definition(body=crd_def)
                    logger.info(f"Created CRD: {crd_name}")

                applied_count += 1

            except Exception as e:
                logger.error(f"Failed to apply CRD {crd_name}: {e}")

        logger.info(f"Applied {applied_count} CRDs to cluster")
        return applied_count > 0

    def get_crds_as_dict(self):
        """Generate all CRDs as in-memory dictionary objects.

        Returns:
            Dict mapping CRD names to their definitions
        """
        self.registry.discover_models()

        crds = {}
        for model_key, model_info in self.registry.get_all_models().items():
            try:
                crd_def = self._generate_crd_definition(model_info)
                crds[crd_def["metadata"]["name"]] = crd_def
            except Exception as e:
                logger.error(f"Failed to generate in-memory CRD for {model_key}: {e}")

        return crds

    def validate_generated_crds(self):
        """Validate that generated CRDs are valid Kubernetes resources."""
        if not self.output_dir.exists():
            logger.error("CRD output directory does not exist")
            return False

        crd_files = [
            f for f in self.output_dir.glob("*.yaml") if f.name != "kustomization.yaml"
        ]
        if not crd_files:
            logger.error("No CRD files found to validate")
            return False

        valid_count = 0
        for crd_file in crd_files:
            try:
                with open(crd_file, "r") as f:
                    crd_def = yaml.safe_load(f)

                if not isinstance(crd_def, dict):
                    logger.error(f"Invalid YAML in {crd_file}")
                    continue

                if not all(k in crd_def for k in ("apiVersion", "kind", "metadata", "spec")):
                    logger.error(f"Missing required fields in {crd_file}")
                    continue

                if crd_def["kind"] != "CustomResourceDefinition":
                    logger.error(f"Not a CRD: {crd_file}")
                    continue

                valid_count += 1
                logger.debug(f"Valid CRD: {crd_file}")

            except Exception as e:
                logger.error(f"Failed to validate {crd_file}: {e}")

        logger.info(f"Validated {valid_count}/{len(crd_files)} CRD files")
        return valid_count == len(crd_files)


def generate_sync_application(
    repo_url,
    path,
    name="webapps",
    revision="HEAD",
    destination_namespace="",
    sync_wave="1",
):
    """ Argo CD Application that syncs WebApp manifests without fighting the operator.

    The operator writes ``status`` and the admission-pass annotation on every
    WebApp; both are excluded from the diff, otherwise self-heal keeps
    re-applying the manifests.

    Returns:
        dict: the Application manifest
    """
    from webapp_operator.admission.webapp import ADMISSION_ANNOTATION
    from webapp_operator.models.webapp import WebAppSpec

    annotation_pointer = ADMISSION_ANNOTATION.replace("~", "~0").replace("/", "~1")

    return {
        "apiVersion": "argoproj.io/v1alpha1",
        "kind": "Application",
        "metadata": {
            "name": name,
            "namespace": "argocd",
            "annotations": {"argocd.argoproj.io/sync-wave": str(sync_wave)},
        },
        "spec": {
            "project": "default",
            "source": {"repoURL": repo_url, "targetRevision": revision, "path": path},
            "destination": {
                "server": "https://kubernetes.default.svc",
                "namespace": destination_namespace,
            },
            "ignoreDifferences": [
                {
                    "group": WebAppSpec._crd_group,
                    "kind": WebAppSpec._crd_kind,
                    "jsonPointers": [
                        "/status",
                        f"/metadata/annotations/{annotation_pointer}",
                    ],
                }
            ],
            "syncPolicy": {
                "automated": {"prune": True, "selfHeal": True},
                "syncOptions": ["RespectIgnoreDifferences=true"],
                "retry": {
                    "limit": 10,
                    "backoff": {"duration": "5s", "factor": 2, "maxDuration": "4m"},
                },
            },
        },
    }
