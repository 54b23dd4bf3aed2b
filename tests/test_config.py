"""
Tests for environment configuration.
"""
import pytest

from cf_sg_sync.config import CLOUDFLARE_IPS_URL, SyncConfig, parse_ports
from cf_sg_sync.errors import ConfigurationError


def test_defaults():
    config = SyncConfig.from_env({'AWS_SECURITY_GROUP_ID': 'sg-123'})

    assert config.security_group_id == 'sg-123'
    assert config.ports == (80, 443)
    assert config.provider_url == CLOUDFLARE_IPS_URL
    assert config.dry_run is False
    assert config.region is None
    assert config.metrics_namespace is None
    assert config.timeout_seconds == 10.0


def test_reads_credentials_and_region():
    config = SyncConfig.from_env({
        'AWS_SECURITY_GROUP_ID': 'sg-123',
        'AWS_DEFAULT_REGION': 'eu-west-1',
        'AWS_ACCESS_KEY': 'AKIAEXAMPLE',
        'AWS_SECRET_ACCESS_KEY': 'secret',
        'DRY_RUN': 'True',
        'LOG_LEVEL': 'debug',
    })

    assert config.region == 'eu-west-1'
    assert config.access_key_id == 'AKIAEXAMPLE'
    assert config.secret_access_key == 'secret'
    assert config.dry_run is True
    assert config.log_level == 'DEBUG'


def test_aws_region_wins_over_default_region():
    config = SyncConfig.from_env({
        'AWS_SECURITY_GROUP_ID': 'sg-123',
        'AWS_REGION': 'us-east-1',
        'AWS_DEFAULT_REGION': 'eu-west-1',
    })
    assert config.region == 'us-east-1'


def test_missing_group_id():
    with pytest.raises(ConfigurationError):
        SyncConfig.from_env({})


def test_invalid_timeout():
    with pytest.raises(ConfigurationError):
        SyncConfig.from_env({'AWS_SECURITY_GROUP_ID': 'sg-123', 'TIMEOUT_SECONDS': 'soon'})


class TestParsePorts:

    def test_parses_and_dedupes(self):
        assert parse_ports(' 443, 80,443 ') == (443, 80)

    @pytest.mark.parametrize('value', ['', 'http', '0', '70000', '80,-1'])
    def test_rejects_bad_values(self, value):
        with pytest.raises(ConfigurationError):
            parse_ports(value)
