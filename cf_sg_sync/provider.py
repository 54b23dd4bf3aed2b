"""
Fetches the Cloudflare edge ranges that the security group should allow.

A failed fetch is fatal for the run; nothing is retried.
"""

import json
import logging
from typing import Dict, Optional, Set

import urllib3

from cf_sg_sync.cidr import FAMILIES, AddressFamily, family_of
from cf_sg_sync.config import CLOUDFLARE_IPS_URL
from cf_sg_sync.errors import ProviderError

logger = logging.getLogger(__name__)

# Provider result key for each family
RESULT_KEYS = {
    AddressFamily.IPV4: 'ipv4_cidrs',
    AddressFamily.IPV6: 'ipv6_cidrs',
}


def build_http_client(timeout_seconds: float = 10.0) -> urllib3.PoolManager:
    return urllib3.PoolManager(
        retries=False,
        timeout=urllib3.Timeout(connect=5.0, read=timeout_seconds)
    )


def fetch_cloudflare_ranges(
    http: Optional[urllib3.PoolManager] = None,
    url: str = CLOUDFLARE_IPS_URL
) -> Dict[AddressFamily, Set[str]]:
    """
    Fetch the current Cloudflare IP ranges.

    Returns:
        One set of CIDR strings per address family (either may be empty)

    Raises:
        ProviderError: on transport failure, an unsuccessful response or
            a malformed range
    """
    if http is None:
        http = build_http_client()

    logger.info(f"Fetching Cloudflare IP ranges from {url}")
    try:
        response = http.request('GET', url, headers={'Accept': 'application/json'})
    except urllib3.exceptions.HTTPError as e:
        raise ProviderError(f"Failed to connect to Cloudflare: {e}") from e

    try:
        data = json.loads(response.data.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ProviderError(
            f"Unreadable response from Cloudflare (status {response.status}): {e}"
        ) from e

    if not isinstance(data, dict) or not data.get('success', False):
        errors = data.get('errors') if isinstance(data, dict) else data
        raise ProviderError(
            f"Error connecting to Cloudflare (status {response.status}): {json.dumps(errors)}"
        )

    result = data.get('result')
    if not isinstance(result, dict):
        raise ProviderError("Cloudflare response has no result")

    return parse_result(result)


def parse_result(result: dict) -> Dict[AddressFamily, Set[str]]:
    """Turn the provider's result object into one range set per family."""
    ranges = {family: set() for family in FAMILIES}

    for listed_family in FAMILIES:
        for cidr in result.get(RESULT_KEYS[listed_family]) or []:
            if not isinstance(cidr, str):
                raise ProviderError(f"Invalid CIDR from Cloudflare: {cidr!r}")
            try:
                family = family_of(cidr)
            except ValueError as e:
                raise ProviderError(f"Invalid CIDR from Cloudflare: {cidr!r}") from e
            if family is not listed_family:
                logger.warning(
                    f"{cidr} listed under {RESULT_KEYS[listed_family]} is {family.label}"
                )
            ranges[family].add(cidr)

    logger.info(
        f"Cloudflare: {len(ranges[AddressFamily.IPV4])} IPv4 ranges, "
        f"{len(ranges[AddressFamily.IPV6])} IPv6 ranges"
    )
    return ranges
