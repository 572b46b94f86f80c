"""Clone request and container record models."""

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


ID_MARKER = "id:"


class CloneRequest(BaseModel):
    """Parameters of a single clone invocation."""
    model_config = ConfigDict(extra="forbid")

    parent: str = Field(..., min_length=1, description="Template name or id:<id>")
    name: str = Field(..., min_length=1, description="New container name")
    environment: Optional[str] = Field(None, description="Owning environment ID")
    network: Optional[str] = Field(None, description="'<cidr> <vlan>' for static networking")
    token: Optional[str] = Field(None, description="Registration token for the management server")
    cdn_token: Optional[str] = Field(None, description="CDN token used if the template is imported")

    @property
    def parent_id(self) -> Optional[str]:
        """Literal template id when the parent carries the id: marker."""
        if ID_MARKER in self.parent:
            return self.parent.split(ID_MARKER, 1)[1]
        return None


class NetworkAssignment(BaseModel):
    """Static address assigned to a container."""
    cidr: str
    vlan: str
    gateway: str

    @property
    def ip(self) -> str:
        return self.cidr.split("/")[0]


class ContainerRecord(BaseModel):
    """Provisioning-time attributes persisted in the metadata store."""
    parent: Optional[str] = None
    environment: Optional[str] = None
    ip: Optional[str] = None
    vlan: Optional[str] = None
    uid: Optional[str] = None
    interface: Optional[str] = None

    def to_metadata(self) -> Dict[str, str]:
        """Flatten to the string mapping kept by the store."""
        return {k: v for k, v in self.model_dump().items() if v is not None}


class CloneResult(BaseModel):
    """Outcome of a completed clone."""
    name: str
    fingerprint: str
    metadata: Dict[str, str] = Field(default_factory=dict)

    @property
    def message(self) -> str:
        return f"{self.name} with ID {self.fingerprint} successfully cloned"
