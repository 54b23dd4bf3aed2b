"""
Shared fixtures: an in-memory EC2 security group and a canned Cloudflare API.
"""
import json
from unittest.mock import MagicMock, Mock

import pytest
from botocore.exceptions import ClientError

from cf_sg_sync.security_group import SecurityGroupClient

GROUP_ID = 'sg-0123456789abcdef0'

FIELDS = {
    'IpRanges': 'CidrIp',
    'Ipv6Ranges': 'CidrIpv6',
}


def client_error(code, operation):
    return ClientError({'Error': {'Code': code, 'Message': f'{code} (test)'}}, operation)


def _rules_from(ip_permissions):
    rules = []
    for permission in ip_permissions:
        for field, key in FIELDS.items():
            for ip_range in permission.get(field, []):
                rules.append((
                    permission['IpProtocol'],
                    permission.get('FromPort'),
                    permission.get('ToPort'),
                    field,
                    ip_range[key],
                ))
    return rules


class FakeEc2:
    """
    Minimal stand-in for the boto3 EC2 client covering the three security
    group calls. Rules are stored as (protocol, from, to, field, cidr).
    """

    def __init__(self, group_id=GROUP_ID, exists=True):
        self.group_id = group_id
        self.exists = exists
        self.rules = []
        self.calls = []
        self.revoke_errors = {}
        self.authorize_error = None

    def grant(self, cidr, ports=(80, 443), protocol='tcp'):
        field = 'Ipv6Ranges' if ':' in cidr else 'IpRanges'
        for port in ports:
            self.rules.append((protocol, port, port, field, cidr))

    def cidrs(self, field=None):
        return {rule[4] for rule in self.rules if field is None or rule[3] == field}

    def calls_to(self, name):
        return [kwargs for call_name, kwargs in self.calls if call_name == name]

    def describe_security_groups(self, GroupIds):
        self.calls.append(('describe_security_groups', {'GroupIds': GroupIds}))
        if not self.exists or GroupIds != [self.group_id]:
            raise client_error('InvalidGroup.NotFound', 'DescribeSecurityGroups')

        grouped = {}
        for protocol, from_port, to_port, field, cidr in self.rules:
            permission = grouped.setdefault((protocol, from_port, to_port), {
                'IpProtocol': protocol,
                'FromPort': from_port,
                'ToPort': to_port,
                'IpRanges': [],
                'Ipv6Ranges': [],
            })
            permission[field].append({FIELDS[field]: cidr})
        return {'SecurityGroups': [{
            'GroupId': self.group_id,
            'IpPermissions': list(grouped.values()),
        }]}

    def revoke_security_group_ingress(self, GroupId, IpPermissions):
        self.calls.append(('revoke_security_group_ingress',
                           {'GroupId': GroupId, 'IpPermissions': IpPermissions}))
        if not self.exists:
            raise client_error('InvalidGroup.NotFound', 'RevokeSecurityGroupIngress')

        requested = _rules_from(IpPermissions)
        for rule in requested:
            if rule[4] in self.revoke_errors:
                raise client_error(self.revoke_errors[rule[4]], 'RevokeSecurityGroupIngress')

        present = [rule for rule in requested if rule in self.rules]
        if not present:
            raise client_error('InvalidPermission.NotFound', 'RevokeSecurityGroupIngress')
        for rule in present:
            self.rules.remove(rule)

        unknown = [p for p, rule in zip(IpPermissions, requested) if rule not in present]
        response = {'Return': True}
        if unknown:
            response['UnknownIpPermissions'] = unknown
        return response

    def authorize_security_group_ingress(self, GroupId, IpPermissions):
        self.calls.append(('authorize_security_group_ingress',
                           {'GroupId': GroupId, 'IpPermissions': IpPermissions}))
        if self.authorize_error:
            raise client_error(self.authorize_error, 'AuthorizeSecurityGroupIngress')
        if not IpPermissions:
            raise client_error('MissingParameter', 'AuthorizeSecurityGroupIngress')

        requested = _rules_from(IpPermissions)
        if any(rule in self.rules for rule in requested):
            raise client_error('InvalidPermission.Duplicate', 'AuthorizeSecurityGroupIngress')
        self.rules.extend(requested)
        return {'Return': True}


def cloudflare_payload(ipv4=(), ipv6=(), success=True, errors=None):
    return {
        'success': success,
        'errors': errors or [],
        'messages': [],
        'result': {
            'ipv4_cidrs': list(ipv4),
            'ipv6_cidrs': list(ipv6),
            'etag': '38f79d050aa027e3be3865e495dcc9bc',
        },
    }


def mock_http(payload, status=200):
    """urllib3.PoolManager stand-in returning a JSON body."""
    http = MagicMock()
    body = payload if isinstance(payload, bytes) else json.dumps(payload).encode('utf-8')
    http.request.return_value = Mock(status=status, data=body)
    return http


@pytest.fixture
def ec2():
    return FakeEc2()


@pytest.fixture
def sg_client(ec2):
    return SecurityGroupClient(ec2, GROUP_ID)
