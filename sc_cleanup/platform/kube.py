import logging
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any, Optional, TypeVar

import urllib3
import yaml
from kubernetes.client import ApiClient, CoreV1Api, CustomObjectsApi, V1Secret  # type: ignore
from kubernetes.client.exceptions import ApiException  # type: ignore
from kubernetes.config import new_client_from_config_dict  # type: ignore
from kubernetes.config.config_exception import ConfigException  # type: ignore
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from sc_cleanup.util.util import get_file_content

logger = logging.getLogger()

ModelT = TypeVar("ModelT", bound=BaseModel)


class KubeError(Exception):
    pass


class CredentialError(KubeError):
    pass


class ClusterConnectionError(KubeError):
    pass


class SchemaError(KubeError):
    pass


class NotFoundError(KubeError):
    pass


class ListError(KubeError):
    pass


class GetError(KubeError):
    pass


class UpdateError(KubeError):
    pass


class DeleteError(KubeError):
    pass


def handle_error(error_cls: type[KubeError]) -> Callable:  # type: ignore
    def inner(func: Callable) -> Callable:  # type: ignore
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except ApiException as error:
                logger.debug(
                    "Kube Client Call Error: %s\nArgs: %s\nKwargs: %s",
                    error.reason,
                    args[1:],
                    kwargs,
                )
                if error.status == 404:
                    raise NotFoundError(
                        f"Kubernetes resource not found: {error.reason}"
                    ) from error
                raise error_cls(
                    f"{func.__name__} failed: {error.status} {error.reason}"
                ) from error
            except urllib3.exceptions.HTTPError as error:
                logger.debug(
                    "Kube Client Transport Error: %s\nArgs: %s\nKwargs: %s",
                    error,
                    args[1:],
                    kwargs,
                )
                raise error_cls(f"{func.__name__} failed: {error}") from error

        return wrapper

    return inner


@dataclass(frozen=True)
class TrackedResourceKind:
    group: str
    version: str
    kind: str
    plural: Optional[str] = None
    namespaced: bool = True

    @property
    def resource(self) -> str:
        if self.plural:
            return self.plural
        name = self.kind.lower()
        if name.endswith("s"):
            return f"{name}es"
        if name.endswith("y"):
            return f"{name[:-1]}ies"
        return f"{name}s"

    def __str__(self) -> str:
        return f"{self.kind}.{self.version}.{self.group}"


class ObjectMeta(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str
    namespace: str = ""
    finalizers: list[str] = []
    owner_references: list[dict[str, Any]] = Field(
        alias="ownerReferences", default=[]
    )


class ServiceBindingSpec(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    secret_name: str = Field(alias="secretName")


class ServiceBinding(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    api_version: str = Field(alias="apiVersion", default="servicecatalog.k8s.io/v1beta1")
    kind: str = "ServiceBinding"
    metadata: ObjectMeta
    spec: ServiceBindingSpec

    def to_body(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


SERVICE_BINDING_KIND = TrackedResourceKind(
    group="servicecatalog.k8s.io", version="v1beta1", kind="ServiceBinding"
)

_schemas: dict[TrackedResourceKind, type[BaseModel]] = {}


def register_schema(kind: TrackedResourceKind, model: type[BaseModel]) -> None:
    registered = _schemas.get(kind)
    if registered is not None and registered is not model:
        raise SchemaError(
            f"{kind} is already registered with schema {registered.__name__}."
        )
    _schemas[kind] = model


def get_schema(kind: TrackedResourceKind) -> type[BaseModel]:
    try:
        return _schemas[kind]
    except KeyError as error:
        raise SchemaError(f"No schema registered for {kind}.") from error


class KubeClient:
    _core_v1_api: CoreV1Api
    _custom_objects_api: CustomObjectsApi

    def __init__(self, api_client: ApiClient) -> None:
        self._core_v1_api = CoreV1Api(api_client=api_client)
        self._custom_objects_api = CustomObjectsApi(api_client=api_client)

    @handle_error(ListError)
    def list_namespaces(self) -> list[str]:
        response = self._core_v1_api.list_namespace()
        return [namespace.metadata.name for namespace in response.items]

    @handle_error(ListError)
    def list_objects(
        self, kind: TrackedResourceKind, namespace: Optional[str] = None
    ) -> list[dict[str, Any]]:
        if kind.namespaced and namespace:
            response = self._custom_objects_api.list_namespaced_custom_object(
                group=kind.group,
                version=kind.version,
                namespace=namespace,
                plural=kind.resource,
            )
        else:
            response = self._custom_objects_api.list_cluster_custom_object(
                group=kind.group,
                version=kind.version,
                plural=kind.resource,
            )
        return response.get("items", [])

    def list_typed_objects(
        self, kind: TrackedResourceKind, model: type[ModelT]
    ) -> list[ModelT]:
        if get_schema(kind) is not model:
            raise SchemaError(f"{kind} is not registered as {model.__name__}.")
        try:
            return [model.model_validate(item) for item in self.list_objects(kind)]
        except ValidationError as error:
            raise SchemaError(f"Cannot decode {kind}: {error}") from error

    @handle_error(UpdateError)
    def replace_object(
        self, kind: TrackedResourceKind, body: dict[str, Any]
    ) -> dict[str, Any]:
        metadata = body["metadata"]
        if kind.namespaced:
            return self._custom_objects_api.replace_namespaced_custom_object(
                group=kind.group,
                version=kind.version,
                namespace=metadata["namespace"],
                plural=kind.resource,
                name=metadata["name"],
                body=body,
            )
        return self._custom_objects_api.replace_cluster_custom_object(
            group=kind.group,
            version=kind.version,
            plural=kind.resource,
            name=metadata["name"],
            body=body,
        )

    @handle_error(DeleteError)
    def delete_all_objects(
        self, kind: TrackedResourceKind, namespace: Optional[str] = None
    ) -> None:
        if kind.namespaced and namespace:
            self._custom_objects_api.delete_collection_namespaced_custom_object(
                group=kind.group,
                version=kind.version,
                namespace=namespace,
                plural=kind.resource,
            )
        else:
            self._custom_objects_api.delete_collection_cluster_custom_object(
                group=kind.group,
                version=kind.version,
                plural=kind.resource,
            )

    @handle_error(GetError)
    def get_secret(self, namespace: str, name: str) -> V1Secret:
        return self._core_v1_api.read_namespaced_secret(name=name, namespace=namespace)

    @handle_error(UpdateError)
    def replace_secret(self, secret: V1Secret) -> V1Secret:
        return self._core_v1_api.replace_namespaced_secret(
            name=secret.metadata.name,
            namespace=secret.metadata.namespace,
            body=secret,
        )


@dataclass(frozen=True)
class ClusterConnection:
    kube: KubeClient
    kubeconfig: bytes


def read_kubeconfig(path: Optional[str]) -> bytes:
    if not path:
        raise CredentialError("KUBECONFIG is not set.")
    try:
        return get_file_content(path)
    except OSError as error:
        raise CredentialError(f"Cannot read kubeconfig {path}: {error}") from error


def connect(
    kubeconfig: bytes,
    schemas: Optional[dict[TrackedResourceKind, type[BaseModel]]] = None,
) -> ClusterConnection:
    try:
        config_dict = yaml.safe_load(kubeconfig)
    except yaml.YAMLError as error:
        raise CredentialError("Kubeconfig is not valid YAML.") from error
    if not isinstance(config_dict, dict):
        raise CredentialError("Kubeconfig must be a YAML mapping.")

    try:
        api_client = new_client_from_config_dict(config_dict=config_dict)
    except ConfigException as error:
        raise CredentialError(f"Invalid kubeconfig: {error}") from error
    except (TypeError, ValueError, OSError) as error:
        raise ClusterConnectionError(
            f"Cannot build the Kubernetes client: {error}"
        ) from error

    if schemas is None:
        schemas = {SERVICE_BINDING_KIND: ServiceBinding}
    for kind, model in schemas.items():
        register_schema(kind, model)

    return ClusterConnection(kube=KubeClient(api_client), kubeconfig=kubeconfig)
