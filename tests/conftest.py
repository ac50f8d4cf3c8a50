"""Shared test doubles: an in-memory cluster and a fake Helm client."""

from __future__ import annotations

import copy
from typing import Any, Optional

import pytest
from kubernetes.client import V1ObjectMeta, V1OwnerReference, V1Secret

from sc_cleanup.platform.helm import (
    Release,
    ReleaseError,
    ReleaseInfo,
    ReleaseNotFoundError,
)
from sc_cleanup.platform.kube import (
    ClusterConnection,
    KubeError,
    NotFoundError,
    TrackedResourceKind,
)
from sc_cleanup.service.cleaner import Cleaner
from sc_cleanup.util.config import CleanupConfig

KYMA_SYSTEM = "kyma-system"
SECRET_KIND = TrackedResourceKind(group="", version="v1", kind="Secret")


class FakeKubeClient:
    """In-memory stand-in for KubeClient that records every call.

    A kind is served once it has been added with add_kind or add_object;
    listing or deleting an unserved kind raises NotFoundError like the API.
    """

    def __init__(self, namespaces: list[str]) -> None:
        self.namespaces = list(namespaces)
        self.objects: dict[TrackedResourceKind, dict[tuple[str, str], dict]] = {}
        self.secrets: dict[tuple[str, str], V1Secret] = {}
        self.calls: list[tuple[Any, ...]] = []
        self._failures: dict[tuple[str, Optional[TrackedResourceKind]], KubeError] = {}

    def add_kind(self, kind: TrackedResourceKind) -> None:
        self.objects.setdefault(kind, {})

    def add_object(self, kind: TrackedResourceKind, obj: dict[str, Any]) -> None:
        metadata = obj["metadata"]
        self.add_kind(kind)
        self.objects[kind][(metadata.get("namespace", ""), metadata["name"])] = obj

    def add_secret(self, namespace: str, name: str, owner_kinds: list[str]) -> None:
        self.secrets[(namespace, name)] = V1Secret(
            metadata=V1ObjectMeta(
                name=name,
                namespace=namespace,
                owner_references=[
                    V1OwnerReference(
                        api_version="servicecatalog.k8s.io/v1beta1",
                        kind=owner_kind,
                        name=f"{name}-owner",
                        uid="0c5b1c4e-0000-0000-0000-000000000000",
                    )
                    for owner_kind in owner_kinds
                ],
            )
        )

    def get(self, kind: TrackedResourceKind, namespace: str, name: str) -> Optional[dict]:
        return self.objects.get(kind, {}).get((namespace, name))

    def fail(
        self, method: str, error: KubeError, kind: Optional[TrackedResourceKind] = None
    ) -> None:
        self._failures[(method, kind)] = error

    def _record(
        self, method: str, kind: Optional[TrackedResourceKind], *args: Any
    ) -> None:
        self.calls.append((method, kind, *args))
        for key in ((method, kind), (method, None)):
            if key in self._failures:
                raise self._failures[key]

    def list_namespaces(self) -> list[str]:
        self._record("list_namespaces", None)
        return list(self.namespaces)

    def list_objects(
        self, kind: TrackedResourceKind, namespace: Optional[str] = None
    ) -> list[dict[str, Any]]:
        self._record("list_objects", kind, namespace)
        if kind not in self.objects:
            raise NotFoundError(f"{kind} not served")
        return [
            copy.deepcopy(obj)
            for (obj_namespace, _), obj in self.objects[kind].items()
            if namespace is None or not kind.namespaced or obj_namespace == namespace
        ]

    def list_typed_objects(self, kind: TrackedResourceKind, model: type) -> list:
        return [model.model_validate(obj) for obj in self.list_objects(kind)]

    def replace_object(self, kind: TrackedResourceKind, body: dict[str, Any]) -> dict:
        metadata = body["metadata"]
        self._record("replace_object", kind, metadata.get("namespace"), metadata["name"])
        self.add_object(kind, copy.deepcopy(body))
        return body

    def delete_all_objects(
        self, kind: TrackedResourceKind, namespace: Optional[str] = None
    ) -> None:
        self._record("delete_all_objects", kind, namespace)
        if kind not in self.objects:
            raise NotFoundError(f"{kind} not served")
        self.objects[kind] = {
            key: obj
            for key, obj in self.objects[kind].items()
            if kind.namespaced and namespace is not None and key[0] != namespace
        }

    def get_secret(self, namespace: str, name: str) -> V1Secret:
        self._record("get_secret", SECRET_KIND, namespace, name)
        if (namespace, name) not in self.secrets:
            raise NotFoundError(f"Secret {namespace}/{name} not found")
        return copy.deepcopy(self.secrets[(namespace, name)])

    def replace_secret(self, secret: V1Secret) -> V1Secret:
        metadata = secret.metadata
        self._record("replace_secret", SECRET_KIND, metadata.namespace, metadata.name)
        self.secrets[(metadata.namespace, metadata.name)] = copy.deepcopy(secret)
        return secret

    def calls_of(self, method: str) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == method]


class FakeHelmClient:
    def __init__(self, backend: FakeHelmBackend, namespace: str) -> None:
        self._backend = backend
        self._namespace = namespace

    def __enter__(self) -> FakeHelmClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self._backend.closed += 1

    def get_release(self, release_name: str) -> Release:
        self._backend.calls.append(("get_release", release_name))
        if release_name in self._backend.lookup_errors:
            raise self._backend.lookup_errors[release_name]
        if release_name not in self._backend.releases:
            raise ReleaseNotFoundError(release_name)
        return self._backend.releases[release_name]

    def uninstall_release(self, release_name: str, timeout: int = 60) -> None:
        self._backend.calls.append(("uninstall_release", release_name, timeout))
        if release_name in self._backend.uninstall_errors:
            raise self._backend.uninstall_errors[release_name]
        del self._backend.releases[release_name]


class FakeHelmBackend:
    def __init__(self) -> None:
        self.releases: dict[str, Release] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.lookup_errors: dict[str, ReleaseError] = {}
        self.uninstall_errors: dict[str, ReleaseError] = {}
        self.closed = 0

    def install(self, release_name: str, namespace: str = KYMA_SYSTEM) -> None:
        self.releases[release_name] = Release(
            name=release_name, namespace=namespace, info=ReleaseInfo(status="deployed")
        )

    def factory(self, kubeconfig: bytes, namespace: str, binary: str) -> FakeHelmClient:
        return FakeHelmClient(self, namespace)


def service_binding(
    name: str, namespace: str, secret_name: str, finalizers: Optional[list[str]] = None
) -> dict[str, Any]:
    return {
        "apiVersion": "servicecatalog.k8s.io/v1beta1",
        "kind": "ServiceBinding",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "finalizers": finalizers or [],
            "resourceVersion": "1",
        },
        "spec": {"secretName": secret_name, "instanceRef": {"name": "instance"}},
    }


def custom_object(
    kind: str,
    name: str,
    namespace: Optional[str] = None,
    finalizers: Optional[list[str]] = None,
    owner_kinds: Optional[list[str]] = None,
) -> dict[str, Any]:
    metadata: dict[str, Any] = {"name": name, "finalizers": finalizers or []}
    if namespace:
        metadata["namespace"] = namespace
    if owner_kinds:
        metadata["ownerReferences"] = [
            {"kind": owner_kind, "name": f"{name}-owner"} for owner_kind in owner_kinds
        ]
    return {"kind": kind, "metadata": metadata}


@pytest.fixture
def config() -> CleanupConfig:
    return CleanupConfig(phase_delay=0)


@pytest.fixture
def kube() -> FakeKubeClient:
    cluster = FakeKubeClient([KYMA_SYSTEM, "default"])
    for kind in CleanupConfig().finalizer_kinds + CleanupConfig().deletable_kinds:
        cluster.add_kind(kind)
    return cluster


@pytest.fixture
def helm() -> FakeHelmBackend:
    return FakeHelmBackend()


@pytest.fixture
def cleaner(kube: FakeKubeClient, helm: FakeHelmBackend, config: CleanupConfig) -> Cleaner:
    connection = ClusterConnection(kube=kube, kubeconfig=b"apiVersion: v1")  # type: ignore
    return Cleaner(connection, config, helm_client_factory=helm.factory)
