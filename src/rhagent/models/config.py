"""Configuration models."""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class AgentConfig(BaseModel):
    """Resource host agent settings."""
    model_config = ConfigDict(extra="ignore")

    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    gpg_user: str = Field(default="")
    gpg_password: str = Field(default="12345678")
    gpg_home: str = Field(default="")
    gpg_binary: str = Field(default="gpg1")
    key_domain: str = Field(default="subutai.io")
    host_key_dir: str = Field(default="/root/.gnupg")
    data_prefix: str = Field(default="/var/lib/subutai/")
    lxc_prefix: str = Field(default="/var/lib/lxc/")
    state_file: str = Field(default="")
    import_command: str = Field(default="subutai import")
    uid_base: int = Field(default=100000, ge=0)
    uid_range: int = Field(default=65536, gt=0)
    apt_proxy: Optional[str] = None
    nameserver: str = Field(default="10.10.10.1")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @model_validator(mode="after")
    def fill_derived(self):
        """Derive paths that default relative to other settings."""
        if not self.gpg_user:
            self.gpg_user = "rh@subutai.io"
        if not self.gpg_home:
            self.gpg_home = str(Path(self.data_prefix) / ".gnupg")
        if not self.state_file:
            self.state_file = str(Path(self.data_prefix) / "agent-db.yaml")
        if self.debug:
            self.log_level = "DEBUG"
        return self


class ManagementConfig(BaseModel):
    """Management server endpoint."""
    model_config = ConfigDict(extra="ignore")

    host: str = Field(default="")
    port: int = Field(default=8443)
    registration_port: int = Field(default=8444)
    rest_public_key: str = Field(default="/rest/v1/security/keyman/getpublickeyring")
    allow_insecure: bool = Field(default=True)

    @property
    def base_url(self) -> str:
        """REST base for the public key endpoint."""
        return f"https://{self.host}:{self.port}"

    @property
    def registration_url(self) -> str:
        """Container token verification endpoint."""
        return (
            f"https://{self.host}:{self.registration_port}"
            "/rest/v1/registration/verify/container-token"
        )


class CDNConfig(BaseModel):
    """Template and key distribution network."""
    model_config = ConfigDict(extra="ignore")

    url: str = Field(default="cdn.subutai.io")
    ssl_port: int = Field(default=8338)
    allow_insecure: bool = Field(default=False)

    @property
    def kurjun(self) -> str:
        """Kurjun REST root."""
        return f"https://{self.url}:{self.ssl_port}/kurjun/rest"


class RHAgentConfig(BaseModel):
    """Main configuration model."""
    model_config = ConfigDict(extra="ignore")

    agent: AgentConfig = Field(default_factory=AgentConfig)
    management: ManagementConfig = Field(default_factory=ManagementConfig)
    cdn: CDNConfig = Field(default_factory=CDNConfig)
