import kopf
import logging
import kubernetes
import os

from webapp_operator.plugins.registry import PluginRegistry
from webapp_operator.crd.generator import CRDManager
from webapp_operator.handlers.webapp_handler import diffbase_storage

logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Plugin registry, created at startup
plugin_registry = None


@kopf.on.startup()
def startup_fn(settings: kopf.OperatorSettings, **kwargs):
    """Configure the operator, its CRDs, plugins and admission webhooks."""
    global plugin_registry

    logger.info("WebApp Operator is starting up...")

    load_kubernetes_config()

    if should_manage_crds():
        try:
            crd_manager = CRDManager()

            if should_generate_crd_files():
                logger.info("Generating CRD files before applying to cluster")
                crd_manager.generate_all_crds(force=True)

            if crd_manager.apply_crds_to_cluster():
                logger.info("CRDs applied to cluster successfully")
            else:
                logger.warning("No CRDs were applied to cluster")
        except Exception as e:
            logger.error(f"Failed to apply CRDs to cluster: {e}")

    plugin_registry = PluginRegistry()

    discovered_count = plugin_registry.discover_plugins()
    if discovered_count == 0:
        logger.error("No plugins discovered - operator will have no functionality")
        raise RuntimeError("No plugins available")

    init_results = plugin_registry.initialise_all_plugins()
    if not any(init_results.values()):
        logger.error("No plugins initialized successfully")
        raise RuntimeError("Plugin initialization failed")

    handlers = plugin_registry.register_all_handlers()

    settings.batching.worker_limit = int(os.getenv("WORKER_LIMIT", "5"))
    settings.posting.enabled = os.getenv("POSTING_ENABLED", "false").lower() == "true"
    settings.watching.server_timeout = int(os.getenv("SERVER_TIMEOUT", "60"))
    settings.persistence.diffbase_storage = diffbase_storage()

    if should_serve_admission():
        configure_admission(settings)

    logger.info(f"Initialised plugins: {list(init_results.keys())}")
    logger.info(f"Bound handlers: {sorted(handlers.keys())}")
    logger.info(f"Worker limit: {settings.batching.worker_limit}")
    logger.info("WebApp Operator startup complete")


@kopf.on.cleanup()
def cleanup_fn(**kwargs):
    """Cleanup operator resources."""
    logger.info("WebApp Operator is shutting down...")

    if plugin_registry:
        plugin_registry.shutdown_all_plugins()

    logger.info("WebApp Operator shutdown complete")


def load_kubernetes_config():
    """Load in-cluster config, falling back to the local kubeconfig."""
    try:
        kubernetes.config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes config")
    except kubernetes.config.ConfigException:
        try:
            kubernetes.config.load_kube_config()
            logger.info("Loaded local Kubernetes config")
        except Exception as e:
            logger.warning(f"Could not load Kubernetes config: {e}")


def configure_admission(settings):
    """Serve the admission webhooks from kopf's HTTPS server.

    Certificates are read from WEBHOOK_CERTFILE/WEBHOOK_PKEYFILE when set;
    otherwise kopf generates a self-signed pair.
    """
    settings.admission.server = kopf.WebhookServer(
        addr=os.getenv("WEBHOOK_ADDR", "0.0.0.0"),
        port=int(os.getenv("WEBHOOK_PORT", "9443")),
        host=os.getenv("WEBHOOK_HOST"),
        certfile=os.getenv("WEBHOOK_CERTFILE"),
        pkeyfile=os.getenv("WEBHOOK_PKEYFILE"),
    )
    settings.admission.managed = os.getenv("WEBHOOK_MANAGED", "webapp-operator.pepr.dev")
    logger.info(f"Admission webhooks managed as {settings.admission.managed}")


def should_manage_crds() -> bool:
    """Determine if operator should manage CRDs directly."""
    return os.getenv("MANAGE_CRDS", "true").lower() == "true"


def should_generate_crd_files() -> bool:
    """Determine if operator should generate CRD YAML files."""
    return os.getenv("GENERATE_CRD_FILES", "false").lower() == "true"


def should_serve_admission() -> bool:
    """Determine if operator should serve its admission webhooks."""
    return os.getenv("ADMISSION_ENABLED", "true").lower() == "true"


def main():
    try:
        kopf.run(clusterwide=True)
    except KeyboardInterrupt:
        logger.info("Operator stopped by user")
    except Exception as e:
        logger.error(f"Operator failed: {e}")
        raise


if __name__ == "__main__":
    main()
