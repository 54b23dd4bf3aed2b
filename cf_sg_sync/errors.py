"""Exceptions raised during a sync run. Every one of them aborts the run."""


class SyncError(Exception):
    """Base class for fatal sync failures."""


class ConfigurationError(SyncError):
    pass


class ProviderError(SyncError):
    """The authoritative range list could not be fetched or understood."""


class SecurityGroupNotFoundError(SyncError):
    def __init__(self, group_id):
        super().__init__(f"Security group {group_id} not found")
        self.group_id = group_id


class RemoteError(SyncError):
    """EC2 call failed outside of a rule mutation."""


class ApplyError(SyncError):
    """A revoke or authorize call failed."""

    def __init__(self, message, operation=None, family=None, cidrs=None):
        super().__init__(message)
        self.operation = operation
        self.family = family
        self.cidrs = list(cidrs or [])


class DuplicateRuleError(ApplyError):
    """Authorize hit a rule that already exists (state changed since the read)."""
