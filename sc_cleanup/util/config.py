from typing import Optional

from pydantic import BaseModel, Field

from sc_cleanup.platform.kube import SERVICE_BINDING_KIND, TrackedResourceKind
from sc_cleanup.util.util import env

HELM_BROKER_RELEASE_NAME = "helm-broker"
SERVICE_CATALOG_ADDONS_RELEASE_NAME = "service-catalog-addons"
SERVICE_CATALOG_RELEASE_NAME = "service-catalog"

SERVICE_BINDING_USAGE_KIND = TrackedResourceKind(
    group="servicecatalog.kyma-project.io",
    version="v1alpha1",
    kind="ServiceBindingUsage",
)

# Kinds whose finalizers are serviced by the removed controllers.
FINALIZER_KINDS = [
    SERVICE_BINDING_KIND,
    TrackedResourceKind(
        group="servicecatalog.k8s.io", version="v1beta1", kind="ServiceInstance"
    ),
    TrackedResourceKind(
        group="servicecatalog.k8s.io", version="v1beta1", kind="ServiceBroker"
    ),
    TrackedResourceKind(
        group="servicecatalog.k8s.io",
        version="v1beta1",
        kind="ClusterServiceBroker",
        namespaced=False,
    ),
]

DELETABLE_KINDS = [
    SERVICE_BINDING_USAGE_KIND,
    SERVICE_BINDING_KIND,
    TrackedResourceKind(
        group="servicecatalog.k8s.io", version="v1beta1", kind="ServiceInstance"
    ),
    TrackedResourceKind(
        group="servicecatalog.kyma-project.io", version="v1alpha1", kind="ServiceBroker"
    ),
    TrackedResourceKind(
        group="servicecatalog.kyma-project.io",
        version="v1alpha1",
        kind="ClusterServiceBroker",
        namespaced=False,
    ),
]


class CleanupConfig(BaseModel):
    release_namespace: str = "kyma-system"
    release_names: list[str] = [
        SERVICE_CATALOG_RELEASE_NAME,
        SERVICE_CATALOG_ADDONS_RELEASE_NAME,
        HELM_BROKER_RELEASE_NAME,
    ]
    finalizer_kinds: list[TrackedResourceKind] = FINALIZER_KINDS
    binding_usage_kind: TrackedResourceKind = SERVICE_BINDING_USAGE_KIND
    binding_kind: TrackedResourceKind = SERVICE_BINDING_KIND
    deletable_kinds: list[TrackedResourceKind] = DELETABLE_KINDS
    uninstall_timeout: int = Field(default=60, gt=0)
    phase_delay: float = Field(default=2.0, ge=0)
    helm_binary: str = "helm"
    kubeconfig_path: Optional[str] = None


def load_config() -> CleanupConfig:
    defaults = CleanupConfig()
    return CleanupConfig(
        release_namespace=env("RELEASE_NAMESPACE", default=defaults.release_namespace),
        release_names=env.list("RELEASE_NAMES", default=defaults.release_names),
        uninstall_timeout=env.int(
            "UNINSTALL_TIMEOUT", default=defaults.uninstall_timeout
        ),
        phase_delay=env.float("PHASE_DELAY", default=defaults.phase_delay),
        helm_binary=env("HELM_BINARY", default=defaults.helm_binary),
        kubeconfig_path=env("KUBECONFIG", default=None),
    )
