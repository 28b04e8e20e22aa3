"""AdmissionReview wire models (admission.k8s.io/v1)."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from rbacguard.models.rbac import UserInfo

ADMISSION_API_VERSION = "admission.k8s.io/v1"


class Operation(str, Enum):
    """Admission operations."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    CONNECT = "CONNECT"


class GroupVersionKind(BaseModel):
    """Kind of the object under review."""

    group: str = ""
    version: str = ""
    kind: str = ""


class GroupVersionResource(BaseModel):
    """Resource of the object under review."""

    model_config = ConfigDict(frozen=True)

    group: str = ""
    version: str = ""
    resource: str = ""

    @property
    def subpath(self) -> str:
        """Route segment identifying this resource, e.g. `globalroles.management.cattle.io`."""
        if self.group:
            return f"{self.resource}.{self.group}"
        return self.resource


class AdmissionUserInfo(BaseModel):
    """Requesting user as reported by the API server."""

    username: str = ""
    uid: str = ""
    groups: List[str] = Field(default_factory=list)
    extra: Dict[str, List[str]] = Field(default_factory=dict)

    def to_user_info(self) -> UserInfo:
        return UserInfo(
            username=self.username,
            uid=self.uid,
            groups=list(self.groups),
            extra={key: list(values) for key, values in self.extra.items()},
        )


class AdmissionRequest(BaseModel):
    """The request half of an AdmissionReview."""

    model_config = ConfigDict(populate_by_name=True)

    uid: str
    kind: GroupVersionKind = Field(default_factory=GroupVersionKind)
    resource: GroupVersionResource = Field(default_factory=GroupVersionResource)
    sub_resource: Optional[str] = Field(None, alias="subResource")
    name: str = ""
    namespace: str = ""
    operation: Operation
    user_info: AdmissionUserInfo = Field(
        default_factory=AdmissionUserInfo, alias="userInfo"
    )
    object: Optional[Dict[str, Any]] = None
    old_object: Optional[Dict[str, Any]] = Field(None, alias="oldObject")
    dry_run: Optional[bool] = Field(None, alias="dryRun")


class Status(BaseModel):
    """Result detail attached to a response."""

    status: str = ""
    message: str = ""
    reason: str = ""
    code: int = 0


class AdmissionResponse(BaseModel):
    """The response half of an AdmissionReview."""

    model_config = ConfigDict(populate_by_name=True)

    uid: str = ""
    allowed: bool = False
    result: Optional[Status] = Field(None, alias="status")
    patch: Optional[str] = None
    patch_type: Optional[str] = Field(None, alias="patchType")
    warnings: Optional[List[str]] = None


class AdmissionReview(BaseModel):
    """Envelope exchanged with the API server."""

    model_config = ConfigDict(populate_by_name=True)

    api_version: str = Field(ADMISSION_API_VERSION, alias="apiVersion")
    kind: str = "AdmissionReview"
    request: Optional[AdmissionRequest] = None
    response: Optional[AdmissionResponse] = None

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
