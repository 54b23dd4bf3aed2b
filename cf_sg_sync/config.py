"""
Run configuration.

Everything a run needs is carried in a SyncConfig that is handed to the
collaborators explicitly. Only the entry points read the environment.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from cf_sg_sync.errors import ConfigurationError

CLOUDFLARE_IPS_URL = 'https://api.cloudflare.com/client/v4/ips'
DEFAULT_PORTS = (80, 443)


@dataclass(frozen=True)
class SyncConfig:
    security_group_id: str
    region: Optional[str] = None
    endpoint_url: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    ports: Tuple[int, ...] = DEFAULT_PORTS
    provider_url: str = CLOUDFLARE_IPS_URL
    timeout_seconds: float = 10.0
    dry_run: bool = False
    rule_description: Optional[str] = None
    metrics_namespace: Optional[str] = None
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'SyncConfig':
        """Build a config from environment variables (os.environ by default)."""
        env = os.environ if environ is None else environ

        group_id = env.get('AWS_SECURITY_GROUP_ID', '').strip()
        if not group_id:
            raise ConfigurationError("AWS_SECURITY_GROUP_ID environment variable is required")

        return cls(
            security_group_id=group_id,
            region=env.get('AWS_REGION') or env.get('AWS_DEFAULT_REGION') or None,
            endpoint_url=env.get('AWS_ENDPOINT_URL') or None,
            access_key_id=env.get('AWS_ACCESS_KEY') or env.get('AWS_ACCESS_KEY_ID') or None,
            secret_access_key=env.get('AWS_SECRET_ACCESS_KEY') or None,
            ports=parse_ports(env.get('INGRESS_PORTS', '80,443')),
            provider_url=env.get('CLOUDFLARE_IPS_URL', CLOUDFLARE_IPS_URL),
            timeout_seconds=_parse_timeout(env.get('TIMEOUT_SECONDS', '10')),
            dry_run=env.get('DRY_RUN', 'false').lower() == 'true',
            rule_description=env.get('RULE_DESCRIPTION') or None,
            metrics_namespace=env.get('METRICS_NAMESPACE') or None,
            log_level=env.get('LOG_LEVEL', 'INFO').upper(),
        )


def parse_ports(value: str) -> Tuple[int, ...]:
    """Parse a comma separated port list such as "80,443"."""
    ports = []
    for item in value.split(','):
        item = item.strip()
        if not item:
            continue
        try:
            port = int(item)
        except ValueError:
            raise ConfigurationError(f"Invalid port in INGRESS_PORTS: {item!r}")
        if not 1 <= port <= 65535:
            raise ConfigurationError(f"Port out of range in INGRESS_PORTS: {port}")
        if port not in ports:
            ports.append(port)

    if not ports:
        raise ConfigurationError("INGRESS_PORTS must list at least one port")
    return tuple(ports)


def _parse_timeout(value: str) -> float:
    try:
        timeout = float(value)
    except ValueError:
        raise ConfigurationError(f"Invalid TIMEOUT_SECONDS: {value!r}")
    if timeout <= 0:
        raise ConfigurationError(f"TIMEOUT_SECONDS must be positive, got {timeout}")
    return timeout
