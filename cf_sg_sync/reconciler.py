"""
Security group reconciliation.

For one address family:
1. Read the ranges the group currently allows
2. Compute removals (existing - desired) and additions (desired - existing)
3. Revoke stale ranges one at a time
4. Authorize all new ranges in a single call

Running it again with the same desired set is a no-op, so a pass that
stops half way is finished by simply running again.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from cf_sg_sync.cidr import FAMILIES, AddressFamily, is_family
from cf_sg_sync.config import DEFAULT_PORTS
from cf_sg_sync.security_group import IngressEntry, SecurityGroupClient

logger = logging.getLogger(__name__)


@dataclass
class ReconcilePlan:
    family: AddressFamily
    to_remove: Set[str] = field(default_factory=set)
    to_add: Set[str] = field(default_factory=set)

    @property
    def over_provisioned(self) -> bool:
        return bool(self.to_remove)

    @property
    def under_provisioned(self) -> bool:
        return bool(self.to_add)

    @property
    def converged(self) -> bool:
        return not self.to_remove and not self.to_add


@dataclass
class ReconcileResult:
    family: AddressFamily
    removed: List[str] = field(default_factory=list)
    already_absent: List[str] = field(default_factory=list)
    added: List[str] = field(default_factory=list)
    dry_run: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.removed or self.added)

    def summary(self) -> dict:
        return {
            'family': self.family.label,
            'removed': self.removed,
            'already_absent': self.already_absent,
            'added': self.added,
            'dry_run': self.dry_run,
        }


def plan(family: AddressFamily, existing: Iterable[str], desired: Iterable[str]) -> ReconcilePlan:
    """Diff two range sets, ignoring anything that is not of the given family."""
    existing = {cidr for cidr in existing if is_family(cidr, family)}
    desired = {cidr for cidr in desired if is_family(cidr, family)}
    return ReconcilePlan(
        family=family,
        to_remove=existing - desired,
        to_add=desired - existing,
    )


def build_entries(
    cidr: str,
    family: AddressFamily,
    ports: Tuple[int, ...] = DEFAULT_PORTS,
    description: Optional[str] = None
) -> List[IngressEntry]:
    """One TCP entry per managed port for a single range."""
    return [
        IngressEntry(family=family, cidr=cidr, port=port, description=description)
        for port in ports
    ]


class Reconciler:
    def __init__(
        self,
        client: SecurityGroupClient,
        ports: Tuple[int, ...] = DEFAULT_PORTS,
        description: Optional[str] = None,
        dry_run: bool = False
    ):
        self.client = client
        self.ports = tuple(ports)
        self.description = description
        self.dry_run = dry_run

    def reconcile(self, family: AddressFamily, desired: Iterable[str]) -> ReconcileResult:
        """
        Converge the group's ranges for one family to the desired set.

        Raises:
            SecurityGroupNotFoundError: the group does not exist
            ApplyError: a revoke failed for a reason other than "not found",
                or the batched authorize failed. Remaining work for the
                family is abandoned.
        """
        existing = self.client.read_existing(family)
        current_plan = plan(family, existing, desired)
        result = ReconcileResult(family=family, dry_run=self.dry_run)

        if current_plan.converged:
            logger.info(f"{family.label}: {len(existing)} ranges up to date, no changes needed")
            return result

        logger.info(
            f"{family.label}: {len(current_plan.to_remove)} ranges to remove, "
            f"{len(current_plan.to_add)} ranges to add"
        )
        if self.dry_run:
            for cidr in sorted(current_plan.to_remove):
                logger.info(f"[DRY] Would revoke {cidr} on ports {self._ports_label()}")
            for cidr in sorted(current_plan.to_add):
                logger.info(f"[DRY] Would authorize {cidr} on ports {self._ports_label()}")
            result.removed = sorted(current_plan.to_remove)
            result.added = sorted(current_plan.to_add)
            return result

        self._remove(current_plan, result)
        self._add(current_plan, result)
        return result

    def reconcile_all(
        self,
        desired_by_family: Dict[AddressFamily, Set[str]],
        results: Optional[Dict[AddressFamily, ReconcileResult]] = None
    ) -> Dict[AddressFamily, ReconcileResult]:
        """
        IPv4 then IPv6; an error in one family stops the run.

        Pass a results dict to keep the outcome of families that finished
        before a failure.
        """
        if results is None:
            results = {}
        for family in FAMILIES:
            results[family] = self.reconcile(family, desired_by_family.get(family, set()))
        return results

    def _remove(self, current_plan: ReconcilePlan, result: ReconcileResult) -> None:
        # One call per range so an already-absent rule cannot block the rest
        for cidr in sorted(current_plan.to_remove):
            entries = build_entries(cidr, current_plan.family, self.ports)
            if self.client.revoke(entries):
                logger.info(f"Revoked {cidr} on ports {self._ports_label()}")
                result.removed.append(cidr)
            else:
                result.already_absent.append(cidr)

    def _add(self, current_plan: ReconcilePlan, result: ReconcileResult) -> None:
        if not current_plan.to_add:
            return

        cidrs = sorted(current_plan.to_add)
        entries = []
        for cidr in cidrs:
            entries.extend(build_entries(cidr, current_plan.family, self.ports, self.description))

        self.client.authorize(entries)
        logger.info(
            f"Authorized {len(cidrs)} {current_plan.family.label} ranges "
            f"on ports {self._ports_label()}"
        )
        result.added.extend(cidrs)

    def _ports_label(self) -> str:
        return '/'.join(str(port) for port in self.ports)
