"""
EC2 security group access: read the current ingress ranges, revoke and
authorize ingress entries.

Raw IpPermissions dicts are converted to typed RangeGrant / IngressEntry
values at this boundary so nothing above it branches on optional fields.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Set

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from cf_sg_sync.cidr import AddressFamily, FAMILIES, family_of
from cf_sg_sync.config import SyncConfig
from cf_sg_sync.errors import (
    ApplyError,
    DuplicateRuleError,
    RemoteError,
    SecurityGroupNotFoundError,
)

logger = logging.getLogger(__name__)

GROUP_NOT_FOUND = 'InvalidGroup.NotFound'
PERMISSION_NOT_FOUND = 'InvalidPermission.NotFound'
PERMISSION_DUPLICATE = 'InvalidPermission.Duplicate'


@dataclass(frozen=True)
class RangeGrant:
    """One CIDR found in an existing ingress permission."""
    family: AddressFamily
    cidr: str
    protocol: str
    from_port: Optional[int] = None
    to_port: Optional[int] = None


@dataclass(frozen=True)
class IngressEntry:
    """A single-range, single-port ingress rule managed by the sync."""
    family: AddressFamily
    cidr: str
    port: int
    protocol: str = 'tcp'
    description: Optional[str] = None

    def to_ip_permission(self) -> Dict[str, Any]:
        ip_range = {self.family.cidr_key: self.cidr}
        if self.description:
            ip_range['Description'] = self.description
        return {
            'IpProtocol': self.protocol,
            'FromPort': self.port,
            'ToPort': self.port,
            self.family.ranges_key: [ip_range],
        }


def create_ec2_client(config: SyncConfig):
    """Create an EC2 client from explicit config; unset values fall back to the boto3 chain."""
    try:
        return boto3.client(
            'ec2',
            region_name=config.region,
            endpoint_url=config.endpoint_url,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
        )
    except BotoCoreError as e:
        raise RemoteError(f"Failed to create EC2 client: {e}") from e


def create_cloudwatch_client(config: SyncConfig):
    try:
        return boto3.client(
            'cloudwatch',
            region_name=config.region,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
        )
    except BotoCoreError as e:
        raise RemoteError(f"Failed to create CloudWatch client: {e}") from e


def error_code(error: ClientError) -> str:
    return error.response.get('Error', {}).get('Code', '')


def parse_ip_permissions(permissions: Iterable[Dict[str, Any]]) -> List[RangeGrant]:
    """
    Flatten raw IpPermissions into RangeGrants.

    The family of each grant comes from the CIDR itself, so a range is
    found whichever EC2 field it sits in.
    """
    grants = []
    for permission in permissions:
        protocol = permission.get('IpProtocol', '')
        from_port = permission.get('FromPort')
        to_port = permission.get('ToPort')
        for field_family in FAMILIES:
            for ip_range in permission.get(field_family.ranges_key, []):
                cidr = ip_range.get(field_family.cidr_key)
                if not cidr:
                    continue
                grants.append(RangeGrant(
                    family=family_of(cidr),
                    cidr=cidr,
                    protocol=protocol,
                    from_port=from_port,
                    to_port=to_port,
                ))
    return grants


class SecurityGroupClient:
    """The three primitives the reconciler needs, bound to one security group."""

    def __init__(self, ec2, group_id: str):
        self.ec2 = ec2
        self.group_id = group_id

    def describe(self) -> List[RangeGrant]:
        try:
            response = self.ec2.describe_security_groups(GroupIds=[self.group_id])
        except ClientError as e:
            if error_code(e) == GROUP_NOT_FOUND:
                raise SecurityGroupNotFoundError(self.group_id) from e
            raise RemoteError(f"Failed to describe security group {self.group_id}: {e}") from e
        except BotoCoreError as e:
            raise RemoteError(f"Failed to describe security group {self.group_id}: {e}") from e

        groups = response.get('SecurityGroups') or []
        if not groups:
            raise SecurityGroupNotFoundError(self.group_id)
        try:
            return parse_ip_permissions(groups[0].get('IpPermissions', []))
        except ValueError as e:
            raise RemoteError(f"Unreadable rule in security group {self.group_id}: {e}") from e

    def read_existing(self, family: AddressFamily) -> Set[str]:
        """Every CIDR of this family granted by any ingress permission, whatever its port or protocol."""
        existing = {grant.cidr for grant in self.describe() if grant.family is family}
        logger.info(f"{self.group_id}: {len(existing)} existing {family.label} ranges")
        return existing

    def revoke(self, entries: List[IngressEntry]) -> bool:
        """
        Revoke ingress entries in one call.

        Returns:
            False if none of the entries existed (nothing to do), True otherwise

        Raises:
            SecurityGroupNotFoundError: the group disappeared
            ApplyError: any other failure
        """
        cidrs = sorted({entry.cidr for entry in entries})
        try:
            response = self.ec2.revoke_security_group_ingress(
                GroupId=self.group_id,
                IpPermissions=[entry.to_ip_permission() for entry in entries]
            )
        except ClientError as e:
            code = error_code(e)
            if code == PERMISSION_NOT_FOUND:
                logger.warning(f"{self.group_id}: rules for {', '.join(cidrs)} already absent")
                return False
            if code == GROUP_NOT_FOUND:
                raise SecurityGroupNotFoundError(self.group_id) from e
            raise ApplyError(
                f"Failed to revoke {', '.join(cidrs)} from {self.group_id}: {e}",
                operation='revoke',
                family=entries[0].family if entries else None,
                cidrs=cidrs
            ) from e
        except BotoCoreError as e:
            raise ApplyError(
                f"Failed to revoke {', '.join(cidrs)} from {self.group_id}: {e}",
                operation='revoke',
                family=entries[0].family if entries else None,
                cidrs=cidrs
            ) from e

        unknown = response.get('UnknownIpPermissions') or []
        if unknown:
            logger.warning(
                f"{self.group_id}: {len(unknown)} of {len(entries)} rules for "
                f"{', '.join(cidrs)} were not present"
            )
        return len(unknown) < len(entries)

    def authorize(self, entries: List[IngressEntry]) -> None:
        """
        Authorize ingress entries in one call.

        Raises:
            DuplicateRuleError: an entry already exists
            ApplyError: any other failure
        """
        if not entries:
            raise ValueError("authorize needs at least one ingress entry")

        cidrs = sorted({entry.cidr for entry in entries})
        family = entries[0].family
        try:
            self.ec2.authorize_security_group_ingress(
                GroupId=self.group_id,
                IpPermissions=[entry.to_ip_permission() for entry in entries]
            )
        except ClientError as e:
            code = error_code(e)
            if code == PERMISSION_DUPLICATE:
                raise DuplicateRuleError(
                    f"Rule already exists in {self.group_id} (state changed since read): {e}",
                    operation='authorize',
                    family=family,
                    cidrs=cidrs
                ) from e
            if code == GROUP_NOT_FOUND:
                raise SecurityGroupNotFoundError(self.group_id) from e
            raise ApplyError(
                f"Failed to authorize {len(cidrs)} ranges in {self.group_id}: {e}",
                operation='authorize',
                family=family,
                cidrs=cidrs
            ) from e
        except BotoCoreError as e:
            raise ApplyError(
                f"Failed to authorize {len(cidrs)} ranges in {self.group_id}: {e}",
                operation='authorize',
                family=family,
                cidrs=cidrs
            ) from e
