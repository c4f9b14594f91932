"""Status conditions for the KnativeServing resource.

Two conditions are tracked, each in {True, False, Unknown}:
- InstallSucceeded: the manifest was applied without error
- DeploymentsAvailable: every Deployment in the manifest reports Available

Ready is derived from both and is never stored on its own.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

CONDITION_TRUE = 'True'
CONDITION_FALSE = 'False'
CONDITION_UNKNOWN = 'Unknown'

INSTALL_SUCCEEDED = 'InstallSucceeded'
DEPLOYMENTS_AVAILABLE = 'DeploymentsAvailable'

# Recognized condition types, in the order they appear in status
CONDITION_TYPES = (INSTALL_SUCCEEDED, DEPLOYMENTS_AVAILABLE)


def utc_now() -> str:
    """Current UTC time as an RFC 3339 string with second precision."""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace('+00:00', 'Z')


@dataclass
class Condition:
    """A named tri-state indicator on the resource status.

    Attributes:
        type: Condition type (InstallSucceeded, DeploymentsAvailable)
        status: True, False or Unknown
        reason: One-word reason for the last transition
        message: Human-readable detail
        last_transition_time: When status last changed
    """
    type: str
    status: str = CONDITION_UNKNOWN
    reason: str = ''
    message: str = ''
    last_transition_time: Optional[str] = None

    @property
    def is_true(self) -> bool:
        return self.status == CONDITION_TRUE

    @property
    def is_false(self) -> bool:
        return self.status == CONDITION_FALSE

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            'type': self.type,
            'status': self.status,
        }
        if self.reason:
            d['reason'] = self.reason
        if self.message:
            d['message'] = self.message
        if self.last_transition_time is not None:
            d['lastTransitionTime'] = self.last_transition_time
        return d

    @classmethod
    def from_dict(cls, data: dict) -> 'Condition':
        return cls(
            type=data['type'],
            status=data.get('status', CONDITION_UNKNOWN),
            reason=data.get('reason', ''),
            message=data.get('message', ''),
            last_transition_time=data.get('lastTransitionTime'),
        )


@dataclass
class ServingStatus:
    """Observed state of a KnativeServing installation.

    Attributes:
        conditions: Recognized conditions (empty until initialized)
        version: Operator version that last installed successfully
    """
    conditions: list[Condition] = field(default_factory=list)
    version: str = ''
    clock: Callable[[], str] = field(default=utc_now, repr=False, compare=False)

    def get_condition(self, condition_type: str) -> Optional[Condition]:
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return None

    def initialize_conditions(self) -> None:
        """Set every recognized condition that is not present to Unknown."""
        for condition_type in CONDITION_TYPES:
            if self.get_condition(condition_type) is None:
                self._set(condition_type, CONDITION_UNKNOWN, '', '')

    def is_ready(self) -> bool:
        """True when the install succeeded and all deployments are available."""
        return self.is_install_succeeded() and self.is_deployments_available()

    def is_install_succeeded(self) -> bool:
        condition = self.get_condition(INSTALL_SUCCEEDED)
        return condition is not None and condition.is_true

    def is_deployments_available(self) -> bool:
        condition = self.get_condition(DEPLOYMENTS_AVAILABLE)
        return condition is not None and condition.is_true

    def mark_install_succeeded(self) -> None:
        self._set(INSTALL_SUCCEEDED, CONDITION_TRUE, '', '')

    def mark_install_failed(self, message: str) -> None:
        self._set(INSTALL_SUCCEEDED, CONDITION_FALSE, 'Error',
                  f"Install failed with message: {message}")

    def mark_deployments_available(self) -> None:
        self._set(DEPLOYMENTS_AVAILABLE, CONDITION_TRUE, '', '')

    def mark_deployments_not_ready(self) -> None:
        self._set(DEPLOYMENTS_AVAILABLE, CONDITION_FALSE, 'NotReady',
                  'Waiting on deployments')

    def _set(self, condition_type: str, status: str, reason: str, message: str) -> None:
        """Set a condition, moving its transition time only when status changes."""
        existing = self.get_condition(condition_type)
        if existing is None:
            self.conditions.append(Condition(
                type=condition_type,
                status=status,
                reason=reason,
                message=message,
                last_transition_time=self.clock(),
            ))
            self.conditions.sort(key=_condition_order)
            return

        if existing.status != status:
            logger.debug(f"Condition {condition_type}: {existing.status} -> {status}")
            existing.last_transition_time = self.clock()
        existing.status = status
        existing.reason = reason
        existing.message = message

    def to_dict(self) -> dict:
        d: dict[str, Any] = {}
        if self.conditions:
            d['conditions'] = [c.to_dict() for c in self.conditions]
        if self.version:
            d['version'] = self.version
        return d

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'ServingStatus':
        if not data:
            return cls()
        return cls(
            conditions=[Condition.from_dict(c) for c in data.get('conditions') or []],
            version=data.get('version', ''),
        )


def _condition_order(condition: Condition) -> int:
    try:
        return CONDITION_TYPES.index(condition.type)
    except ValueError:
        return len(CONDITION_TYPES)
