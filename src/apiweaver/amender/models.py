"""Change sets and amendment results."""

from enum import Enum
from typing import Union

from pydantic import BaseModel, ConfigDict, Field

from apiweaver.parser.base import Component, Document, Endpoint, Parameter, Response


class ChangeOperation(str, Enum):
    ADD = "add"
    MODIFY = "modify"
    REMOVE = "remove"


class TargetKind(str, Enum):
    ENDPOINT = "endpoint"
    PARAMETER = "parameter"
    RESPONSE = "response"
    COMPONENT = "component"


class ChangeTarget(BaseModel):
    """Identifies the element a change applies to."""

    model_config = ConfigDict(frozen=True)

    kind: TargetKind
    method: str = ""
    path: str = ""
    name: str = ""  # parameter or component name
    location: str = ""  # parameter location
    status_code: str = ""
    component_kind: str = ""  # empty matches any component kind

    @property
    def endpoint_key(self) -> str:
        return f"{self.method} {self.path}"

    @property
    def identity(self) -> str:
        if self.kind == TargetKind.ENDPOINT:
            return self.endpoint_key
        if self.kind == TargetKind.PARAMETER:
            return f"{self.endpoint_key} parameter {self.name} ({self.location})"
        if self.kind == TargetKind.RESPONSE:
            return f"{self.endpoint_key} response {self.status_code}"
        if self.component_kind:
            return f"component {self.name} ({self.component_kind})"
        return f"component {self.name}"


Payload = Union[Endpoint, Parameter, Response, Component]


class Change(BaseModel):
    """One add/modify/remove operation.

    ``fields`` lists the payload fields the change description actually
    supplied; a modify overlays only those.
    """

    model_config = ConfigDict(frozen=True)

    operation: ChangeOperation
    target: ChangeTarget
    payload: Payload | None = None
    fields: list[str] = Field(default_factory=list)
    line_number: int = 0

    def describe(self) -> str:
        return f"{self.operation.value} {self.target.kind.value} {self.target.identity}"


class ChangeSet(BaseModel):
    model_config = ConfigDict(frozen=True)

    changes: list[Change] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.changes)


class Conflict(BaseModel):
    """A change that could not be applied without overriding existing content."""

    model_config = ConfigDict(frozen=True)

    kind: TargetKind
    identity: str
    operation: ChangeOperation
    existing: str = ""
    incoming: str = ""
    reason: str = ""
    line_number: int = 0

    def describe(self) -> str:
        text = f"{self.operation.value} {self.kind.value} {self.identity}: {self.reason}"
        if self.existing:
            text += f" [existing: {self.existing}]"
        if self.incoming:
            text += f" [incoming: {self.incoming}]"
        return text

    def __str__(self) -> str:
        return self.describe()


class AmendmentReport(BaseModel):
    """Outcome of merging a ChangeSet into a Document."""

    document: Document
    changes: list[str] = Field(default_factory=list)
    conflicts: list[Conflict] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    conflicts_resolved: int = 0  # conflicts accepted in favour of the incoming change


class AmendmentMetadata(BaseModel):
    processing_time_ms: int = 0
    input_size_bytes: int = 0
    output_size_bytes: int = 0
    changes_applied: int = 0
    conflicts_resolved: int = 0


class AmendmentResult(BaseModel):
    content: str = ""
    format: str = "yaml"
    document: Document
    changes: list[str] = Field(default_factory=list)
    conflicts: list[Conflict] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    metadata: AmendmentMetadata = Field(default_factory=AmendmentMetadata)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)
