import logging
from collections.abc import Callable
from typing import Optional

from sc_cleanup.platform.helm import HelmClient, ReleaseNotFoundError
from sc_cleanup.platform.kube import (
    ClusterConnection,
    KubeClient,
    NotFoundError,
    ServiceBinding,
    TrackedResourceKind,
)
from sc_cleanup.util.config import CleanupConfig

logger = logging.getLogger()

HelmClientFactory = Callable[[bytes, str, str], HelmClient]


class Cleaner:
    """Removes Service Catalog releases and resources from one cluster.

    Every operation is idempotent: running it against an already cleaned
    cluster is a no-op. Listing, update and delete failures are raised to the
    caller unchanged.
    """

    _config: CleanupConfig
    _connection: ClusterConnection
    _helm_client_factory: HelmClientFactory

    def __init__(
        self,
        connection: ClusterConnection,
        config: CleanupConfig,
        helm_client_factory: Optional[HelmClientFactory] = None,
    ) -> None:
        self._connection = connection
        self._config = config
        self._helm_client_factory = helm_client_factory or HelmClient

    @property
    def _kube(self) -> KubeClient:
        return self._connection.kube

    def remove_release(self, release_name: str) -> None:
        with self._helm_client_factory(
            self._connection.kubeconfig,
            self._config.release_namespace,
            self._config.helm_binary,
        ) as helm_client:
            logger.info("Looking for %s release...", release_name)
            try:
                release = helm_client.get_release(release_name)
            except ReleaseNotFoundError:
                logger.info("%s release not found, nothing to do", release_name)
                return

            logger.info(
                "Found %s release in the namespace %s: status %s",
                release.name,
                release.namespace,
                release.info.status,
            )
            logger.info("Uninstalling %s...", release_name)
            helm_client.uninstall_release(
                release_name, timeout=self._config.uninstall_timeout
            )
        logger.info("%s release removed.", release_name)

    def strip_finalizers(self) -> None:
        namespaces = self._kube.list_namespaces()

        for kind in self._config.finalizer_kinds:
            for namespace in self._namespaces_for(kind, namespaces):
                self.strip_finalizers_on_kind(kind, namespace)

        usage_kind = self._config.binding_usage_kind
        for namespace in self._namespaces_for(usage_kind, namespaces):
            self.clear_owner_references(usage_kind, namespace)

        self.release_binding_secrets()

    def strip_finalizers_on_kind(
        self, kind: TrackedResourceKind, namespace: Optional[str]
    ) -> None:
        for obj in self._list_served_objects(kind, namespace):
            obj["metadata"]["finalizers"] = []
            self._kube.replace_object(kind, obj)
            logger.info(
                "%s %s: finalizers removed", kind.kind, _object_path(obj, namespace)
            )

    def clear_owner_references(
        self, kind: TrackedResourceKind, namespace: Optional[str]
    ) -> None:
        for obj in self._list_served_objects(kind, namespace):
            logger.info(
                "Removing owner reference from %s %s",
                kind.kind,
                _object_path(obj, namespace),
            )
            obj["metadata"]["ownerReferences"] = []
            self._kube.replace_object(kind, obj)

    def release_binding_secrets(self) -> None:
        logger.info("%s secrets owner references", self._config.binding_kind.kind)
        try:
            bindings = self._kube.list_typed_objects(
                self._config.binding_kind, ServiceBinding
            )
        except NotFoundError:
            logger.info("%s is not served, skipping", self._config.binding_kind)
            return

        for binding in bindings:
            namespace = binding.metadata.namespace
            logger.info("%s/%s", namespace, binding.metadata.name)
            binding.metadata.finalizers = []
            self._kube.replace_object(self._config.binding_kind, binding.to_body())

            # A binding always owns its secret, a missing one is fatal.
            secret = self._kube.get_secret(namespace, binding.spec.secret_name)
            secret.metadata.owner_references = []
            self._kube.replace_secret(secret)
            logger.info(
                "Secret %s/%s: owner references removed",
                namespace,
                binding.spec.secret_name,
            )

    def reap_resources(self) -> None:
        namespaces = self._kube.list_namespaces()

        for kind in self._config.deletable_kinds:
            for namespace in self._namespaces_for(kind, namespaces):
                logger.info("%ss in %s", kind.kind, namespace or "cluster scope")
                try:
                    self._kube.delete_all_objects(kind, namespace)
                except NotFoundError:
                    logger.info("%s not found, nothing to delete", kind)

    def _list_served_objects(
        self, kind: TrackedResourceKind, namespace: Optional[str]
    ) -> list[dict]:
        try:
            return self._kube.list_objects(kind, namespace)
        except NotFoundError:
            logger.debug("%s is not served in %s, skipping", kind, namespace)
            return []

    @staticmethod
    def _namespaces_for(
        kind: TrackedResourceKind, namespaces: list[str]
    ) -> list[Optional[str]]:
        if kind.namespaced:
            return list(namespaces)
        return [None]


def _object_path(obj: dict, namespace: Optional[str]) -> str:
    name = obj["metadata"]["name"]
    namespace = obj["metadata"].get("namespace") or namespace
    return f"{namespace}/{name}" if namespace else name
