"""Configuration schema using Pydantic.

One `Config` object drives every transport: which transport to run, the
caller's role, audit/rate-limit settings, validator limits and session timing.
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

Role = Literal["read-only", "read-write", "admin"]
TransportKind = Literal["stdio", "sse", "polling"]


class AuditConfig(BaseModel):
    """Audit trail and write throttling."""
    enabled: bool = True
    file_path: str = ""  # Empty means stderr
    buffer_size: int = 100  # Recent events kept in memory
    rate_limit_enabled: bool = True
    rate_limit_rps: float = 100.0
    rate_limit_burst: int = 200

    @field_validator("buffer_size")
    @classmethod
    def _positive_buffer(cls, v: int) -> int:
        return v if v > 0 else 100


class ValidatorConfig(BaseModel):
    """Identifier limits enforced on capability arguments."""
    max_key_length: int = 1024
    max_bin_name_length: int = 15
    max_namespace_length: int = 31
    max_set_name_length: int = 63
    max_batch_size: int = 5000
    max_record_size: int = 1024 * 1024


class SessionsConfig(BaseModel):
    """Session queues and timers for the HTTP transports."""
    queue_size: int = 100
    idle_timeout_seconds: float = 300.0
    sweep_interval_seconds: float = 60.0
    receive_timeout_seconds: float = 30.0
    shutdown_grace_seconds: float = 5.0


class Config(BaseSettings):
    """Root configuration for toolgate."""
    transport: TransportKind = "stdio"
    host: str = "127.0.0.1"
    port: int = 8080
    role: Role = "read-only"
    audit: AuditConfig = Field(default_factory=AuditConfig)
    validator: ValidatorConfig = Field(default_factory=ValidatorConfig)
    sessions: SessionsConfig = Field(default_factory=SessionsConfig)

    @field_validator("transport", mode="before")
    @classmethod
    def _normalize_transport(cls, v: object) -> object:
        if isinstance(v, str):
            v = v.strip().lower()
            # "websocket" is what older deployments call the polling transport.
            return "polling" if v == "websocket" else v
        return v

    @field_validator("role", mode="before")
    @classmethod
    def _default_role(cls, v: object) -> object:
        if v is None or (isinstance(v, str) and not v.strip()):
            return "read-only"
        return v

    @field_validator("port")
    @classmethod
    def _valid_port(cls, v: int) -> int:
        if v <= 0 or v > 65535:
            raise ValueError(f"invalid port {v}")
        return v

    def can_write(self) -> bool:
        """True if the role permits write operations."""
        return self.role in ("read-write", "admin")

    def can_admin(self) -> bool:
        """True if the role permits administrative operations."""
        return self.role == "admin"

    model_config = SettingsConfigDict(
        env_prefix="TOOLGATE_",
        env_nested_delimiter="__",
    )
