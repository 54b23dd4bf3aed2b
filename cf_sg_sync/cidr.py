"""
Address family handling for CIDR strings.

The family of a range is decided by its literal syntax only, never by the
list or EC2 field it arrived in.
"""

import ipaddress
from enum import Enum
from typing import Dict, Iterable, Set


class AddressFamily(Enum):
    IPV4 = 4
    IPV6 = 6

    @property
    def label(self) -> str:
        return 'IPv4' if self is AddressFamily.IPV4 else 'IPv6'

    @property
    def ranges_key(self) -> str:
        """Key of the range list inside an EC2 IpPermissions element."""
        return 'IpRanges' if self is AddressFamily.IPV4 else 'Ipv6Ranges'

    @property
    def cidr_key(self) -> str:
        return 'CidrIp' if self is AddressFamily.IPV4 else 'CidrIpv6'


# Order in which a run reconciles the families
FAMILIES = (AddressFamily.IPV4, AddressFamily.IPV6)


def family_of(cidr: str) -> AddressFamily:
    """
    Return the address family of a CIDR string.

    Raises:
        ValueError: if the string is not a valid network prefix
    """
    network = ipaddress.ip_network(cidr, strict=False)
    return AddressFamily(network.version)


def is_family(cidr: str, family: AddressFamily) -> bool:
    try:
        return family_of(cidr) is family
    except ValueError:
        return False


def partition_by_family(cidrs: Iterable[str]) -> Dict[AddressFamily, Set[str]]:
    """
    Split CIDR strings into one set per family.

    Raises:
        ValueError: on the first string that is not a valid prefix
    """
    partitioned = {family: set() for family in FAMILIES}
    for cidr in cidrs:
        partitioned[family_of(cidr)].add(cidr)
    return partitioned
