"""
Data models for stacks, their events and the tailing watermark.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import FrozenSet, Iterable, List, Optional, Tuple

from .status import StackStatus

logger = logging.getLogger(__name__)

NESTED_STACK_TYPE = "AWS::CloudFormation::Stack"


@dataclass(frozen=True)
class StackEvent:
    """A single status change of one resource in one stack."""
    event_id: str
    stack_name: str
    timestamp: datetime
    resource_status: str
    logical_resource_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_status_reason: Optional[str] = None

    @property
    def status(self) -> StackStatus:
        return StackStatus.parse(self.resource_status)

    @property
    def sort_key(self) -> Tuple[datetime, str]:
        # event id breaks timestamp ties so the merged feed is reproducible
        return (self.timestamp, self.event_id)

    @property
    def is_stack_event(self) -> bool:
        """True when the event is about the stack itself, not a resource in it."""
        return self.logical_resource_id is None or self.logical_resource_id == self.stack_name


@dataclass(frozen=True)
class StackResource:
    """A resource as listed by DescribeStackResources."""
    resource_type: str
    stack_name: str
    physical_resource_id: Optional[str] = None
    logical_resource_id: Optional[str] = None

    @property
    def is_nested_stack(self) -> bool:
        return self.resource_type == NESTED_STACK_TYPE


@dataclass(frozen=True)
class StackOutput:
    """A stack output value."""
    key: str
    value: str
    description: Optional[str] = None


@dataclass(frozen=True)
class EventPage:
    """One page of DescribeStackEvents results, newest first."""
    events: List[StackEvent]
    next_token: Optional[str] = None


@dataclass(frozen=True)
class StackInfo:
    """The set of stacks to watch."""
    names: FrozenSet[str]
    original_names: FrozenSet[str]

    @classmethod
    def from_names(cls, names: Iterable[str], original_names: Iterable[str]) -> "StackInfo":
        return cls(names=frozenset(names), original_names=frozenset(original_names))


class Watermark:
    """
    Highest event time that has been handed to the presenter.

    Only ever moves forward.
    """

    def __init__(self, initial: datetime):
        self._value = initial

    @property
    def value(self) -> datetime:
        return self._value

    def advance(self, timestamp: datetime) -> bool:
        """
        Move the watermark up to ``timestamp`` if it is newer.

        Returns:
            True if the watermark moved
        """
        if timestamp > self._value:
            self._value = timestamp
            return True
        return False

    def check_batch(self, events: List[StackEvent]) -> None:
        """Warn when a batch tops out below the current watermark."""
        if not events:
            return
        newest = max(event.timestamp for event in events)
        if newest < self._value:
            logger.warning(
                f"Received events older than the watermark (newest {newest.isoformat()}, "
                f"watermark {self._value.isoformat()}); a source stream delivered out of order"
            )

    def __repr__(self) -> str:
        return f"Watermark({self._value.isoformat()})"
