"""
Gateway credentials.

The gateway keeps its listening port and bearer token in its own JSON
config (`~/.openclaw/openclaw.json`):

    {"gateway": {"port": 18789, "auth": {"token": "..."}}}
"""

import json
from dataclasses import dataclass
from typing import Optional

from .config import DEFAULT_GATEWAY_HOST, DEFAULT_ORIGIN, GATEWAY_CONFIG_FILE


class CredentialsError(ValueError):
    """Raised when the gateway config cannot be read or is incomplete"""
    pass


@dataclass(frozen=True)
class GatewayConfig:
    token: str
    port: int
    host: str = DEFAULT_GATEWAY_HOST
    origin: Optional[str] = DEFAULT_ORIGIN

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}"

    def __repr__(self) -> str:
        return f"GatewayConfig(url={self.url!r}, token={self.token[:8]}...)"


def load_gateway_config(
    path: str = GATEWAY_CONFIG_FILE,
    host: str = DEFAULT_GATEWAY_HOST,
    origin: Optional[str] = DEFAULT_ORIGIN,
) -> GatewayConfig:
    """
    Read gateway.port and gateway.auth.token from the gateway config file.

    Raises:
        CredentialsError: If the file is missing, unparsable or incomplete
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            content = f.read()
    except OSError as e:
        raise CredentialsError(f"Failed to read {path}: {e}") from e

    try:
        data = json.loads(content)
    except ValueError as e:
        raise CredentialsError(f"Failed to parse {path}: {e}") from e

    gateway = data.get("gateway") if isinstance(data, dict) else None
    if not isinstance(gateway, dict):
        raise CredentialsError("gateway section not found in config")

    auth = gateway.get("auth")
    token = auth.get("token") if isinstance(auth, dict) else None
    if not isinstance(token, str) or not token:
        raise CredentialsError("gateway.auth.token not found in config")

    port = gateway.get("port")
    if isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536:
        raise CredentialsError("gateway.port not found in config")

    return GatewayConfig(token=token, port=port, host=host, origin=origin)
