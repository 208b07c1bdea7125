"""Connection target for the local gateway."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

GATEWAY_HOST = "localhost"


class ConnectionConfig(BaseModel):
    """Port and shared secret used to reach the gateway."""

    port: int = Field(default=18789, ge=1, le=65535, description="Gateway port on localhost")
    gateway_token: Optional[str] = Field(
        default=None, alias="gatewayToken", description="Optional shared secret"
    )

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @field_validator("gateway_token")
    @classmethod
    def validate_gateway_token(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v

    @property
    def ws_url(self) -> str:
        return f"ws://{GATEWAY_HOST}:{self.port}/ws"

    @property
    def origin(self) -> str:
        # The gateway rejects upgrades whose Origin is not the same local authority
        return f"http://{GATEWAY_HOST}:{self.port}"
