import base64
from typing import Any, Literal
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    RootModel,
    model_validator,
    field_validator,
)
from enum import StrEnum


class ApiVersion(StrEnum):
    V1 = "admission.k8s.io/v1"


class Operation(StrEnum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    CONNECT = "CONNECT"


class PatchType(StrEnum):
    JSONPatch = "JSONPatch"


class PatchOp(StrEnum):
    REPLACE = "replace"
    ADD = "add"
    REMOVE = "remove"
    MOVE = "move"
    COPY = "copy"
    TEST = "test"


class PatchAction(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    op: PatchOp
    path: str
    value: Any = None
    from_: str | None = Field(default=None, alias="from")


# https://jsonpatch.com/
class Patch(RootModel[list[PatchAction]]):
    def to_json(self) -> str:
        # Only emit the members each operation actually carries, so that an
        # explicit `"value": null` survives and `remove` has no value at all.
        return self.model_dump_json(by_alias=True, exclude_unset=True)

    def to_list(self) -> list[dict[str, Any]]:
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)

    def __len__(self):
        return len(self.root)


# https://kubernetes.io/docs/reference/generated/kubernetes-api/v1.30/#status-v1-meta
class AdmissionReviewStatus(BaseModel):
    code: int | None = None
    message: str | None = None


# https://kubernetes.io/docs/reference/config-api/apiserver-admission.v1/#admission-k8s-io-v1-AdmissionResponse
class AdmissionResponse(BaseModel):
    allowed: bool
    status: AdmissionReviewStatus | None = None
    uid: str
    patchType: PatchType | None = None
    patch: str | None = None
    warnings: list[str] | None = None

    @field_validator("patch", mode="before")
    @classmethod
    def validate_patch(cls, val):
        if isinstance(val, Patch):
            val = base64.b64encode(val.to_json().encode()).decode()
        elif isinstance(val, (str, bytes)):
            # Make sure the base64 string contains valid data.
            Patch.model_validate_json(base64.b64decode(val))
            if isinstance(val, bytes):
                val = val.decode()
        return val

    @model_validator(mode="after")
    def validate_model(self):
        if self.patch and not self.patchType:
            raise ValueError("missing patchType field")
        if self.patchType and not self.patch:
            raise ValueError(f"patchType is {self.patchType} but there is no patch")
        if self.patchType and not self.allowed:
            raise ValueError("a denied response cannot carry a patch")

        return self

    def decoded_patch(self) -> Patch | None:
        if self.patch is None:
            return None
        return Patch.model_validate_json(base64.b64decode(self.patch))


class RequestKind(BaseModel):
    group: str = ""
    version: str = "v1"
    kind: str


# https://kubernetes.io/docs/reference/config-api/apiserver-admission.v1/#admission-k8s-io-v1-AdmissionRequest
class AdmissionRequest(BaseModel):
    uid: str
    kind: RequestKind | None = None
    name: str | None = None
    namespace: str | None = None
    operation: Operation = Operation.CREATE
    object: Any = None


# https://kubernetes.io/docs/reference/config-api/apiserver-admission.v1/#admission-k8s-io-v1-AdmissionReview
class AdmissionReview(BaseModel):
    apiVersion: Literal[ApiVersion.V1] = ApiVersion.V1
    kind: Literal["AdmissionReview"] = "AdmissionReview"
    request: AdmissionRequest | None = None
    response: AdmissionResponse | None = None

    @model_validator(mode="after")
    def validate_model(self):
        if not (self.request or self.response):
            raise ValueError("must contain a request or a response")

        return self


# The Pod models below only describe the fields we read or write. Everything
# else the API server sends is kept as extra data so that re-encoding a Pod
# reproduces the original document.
class HostAlias(BaseModel):
    model_config = ConfigDict(extra="allow")

    ip: str
    hostnames: list[str] | None = None

    def same_as(self, other: "HostAlias") -> bool:
        return self.ip == other.ip and (self.hostnames or []) == (
            other.hostnames or []
        )


class Metadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    labels: dict[str, str] | None = None


class PodSpec(BaseModel):
    model_config = ConfigDict(extra="allow")

    hostAliases: list[HostAlias] | None = None


class Pod(BaseModel):
    model_config = ConfigDict(extra="allow")

    metadata: Metadata = Field(default_factory=Metadata)
    spec: PodSpec | None = None

    def with_host_aliases(self, aliases: list[HostAlias]) -> "Pod":
        """Return a copy of this pod with `aliases` appended to
        spec.hostAliases. The pod itself is left untouched."""

        spec = self.spec if self.spec is not None else PodSpec()
        host_aliases = list(spec.hostAliases or []) + list(aliases)
        return self.model_copy(
            update={"spec": spec.model_copy(update={"hostAliases": host_aliases})}
        )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_unset=True)


class ServiceType(StrEnum):
    CLUSTER_IP = "ClusterIP"
    NODE_PORT = "NodePort"
    LOAD_BALANCER = "LoadBalancer"
    EXTERNAL_NAME = "ExternalName"


# https://kubernetes.io/docs/concepts/services-networking/service/#headless-services
HEADLESS_CLUSTER_IP = "None"


class Service(BaseModel):
    name: str
    namespace: str
    type: ServiceType = ServiceType.CLUSTER_IP
    clusterIP: str | None = None

    @property
    def is_headless(self) -> bool:
        return not self.clusterIP or self.clusterIP == HEADLESS_CLUSTER_IP
