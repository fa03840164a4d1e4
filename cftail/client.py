"""
CloudFormation client interface and the boto3 implementation.
"""

import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, TypeVar

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .config import DEFAULT_MAX_RETRIES
from .errors import classify_error
from .models import EventPage, StackEvent, StackOutput, StackResource

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CloudStackClient(ABC):
    """The three CloudFormation operations cftail needs."""

    @abstractmethod
    def list_stack_resources(self, stack_name: str) -> List[StackResource]:
        """
        List the resources of a stack.

        Args:
            stack_name: Stack name or id (nested stacks are addressed by their ARN)

        Returns:
            Resources of the stack

        Raises:
            ClassifiedError: If the call fails
        """
        pass

    @abstractmethod
    def list_stack_events(self, stack_name: str, next_token: Optional[str] = None) -> EventPage:
        """
        Fetch one page of events for a stack, newest first.

        Callers follow ``next_token`` until it is None.

        Raises:
            ClassifiedError: If the call fails
        """
        pass

    @abstractmethod
    def describe_stack_outputs(self, stack_name: str) -> List[StackOutput]:
        """
        Get the outputs of a stack.

        Raises:
            ClassifiedError: If the call fails
        """
        pass


def _utc(timestamp: datetime) -> datetime:
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)


def event_from_response(raw: Dict[str, Any]) -> StackEvent:
    """Build a StackEvent from a DescribeStackEvents entry."""
    return StackEvent(
        event_id=raw["EventId"],
        stack_name=raw["StackName"],
        timestamp=_utc(raw["Timestamp"]),
        resource_status=raw["ResourceStatus"],
        logical_resource_id=raw.get("LogicalResourceId"),
        resource_type=raw.get("ResourceType"),
        resource_status_reason=raw.get("ResourceStatusReason"),
    )


def resource_from_response(raw: Dict[str, Any]) -> StackResource:
    """Build a StackResource from a DescribeStackResources entry."""
    return StackResource(
        resource_type=raw["ResourceType"],
        stack_name=raw["StackName"],
        # not set until the resource has actually been created
        physical_resource_id=raw.get("PhysicalResourceId") or None,
        logical_resource_id=raw.get("LogicalResourceId"),
    )


class Boto3StackClient(CloudStackClient):
    """CloudStackClient backed by a boto3 ``cloudformation`` client."""

    def __init__(self, cfn_client, max_retries: int = DEFAULT_MAX_RETRIES,
                 sleep: Callable[[float], None] = time.sleep):
        self._cfn = cfn_client
        self.max_retries = max_retries
        self._sleep = sleep

    def __repr__(self) -> str:
        return "Boto3StackClient()"

    def _call(self, operation: str, stack_name: str, fn: Callable[[], T]) -> T:
        """
        Run an API call, retrying throttled and timed out requests.

        Sleeps attempt+1 seconds between tries, up to ``max_retries`` retries.
        """
        attempt = 0
        while True:
            try:
                return fn()
            except (ClientError, BotoCoreError) as e:
                error = classify_error(e, stack_name)
                if not error.kind.is_retryable or attempt >= self.max_retries:
                    raise error from e
                delay = attempt + 1
                logger.debug(f"{operation} for {stack_name} failed ({error.kind.value}), retrying in {delay}s")
                self._sleep(delay)
                attempt += 1

    def list_stack_resources(self, stack_name: str) -> List[StackResource]:
        logger.debug(f"Fetching resources for {stack_name}")
        response = self._call(
            "DescribeStackResources",
            stack_name,
            lambda: self._cfn.describe_stack_resources(StackName=stack_name),
        )
        return [resource_from_response(r) for r in response.get("StackResources", [])]

    def list_stack_events(self, stack_name: str, next_token: Optional[str] = None) -> EventPage:
        kwargs = {"StackName": stack_name}
        if next_token:
            kwargs["NextToken"] = next_token
        logger.debug(f"Fetching events for {stack_name} (next_token={next_token})")
        response = self._call(
            "DescribeStackEvents",
            stack_name,
            lambda: self._cfn.describe_stack_events(**kwargs),
        )
        events = [event_from_response(e) for e in response.get("StackEvents", [])]
        return EventPage(events=events, next_token=response.get("NextToken"))

    def describe_stack_outputs(self, stack_name: str) -> List[StackOutput]:
        response = self._call(
            "DescribeStacks",
            stack_name,
            lambda: self._cfn.describe_stacks(StackName=stack_name),
        )
        stacks = response.get("Stacks", [])
        if not stacks:
            return []
        return [
            StackOutput(
                key=output["OutputKey"],
                value=output["OutputValue"],
                description=output.get("Description"),
            )
            for output in stacks[0].get("Outputs", [])
        ]


def build_client(region: Optional[str] = None, profile: Optional[str] = None,
                 max_retries: int = DEFAULT_MAX_RETRIES) -> Boto3StackClient:
    """
    Create a CloudStackClient from a fresh boto3 session.

    A new session re-reads credentials, which is what we want after they expire.

    Args:
        region: AWS region, defaults to the environment/profile region
        profile: Named AWS profile

    Returns:
        Boto3StackClient
    """
    session = boto3.session.Session(profile_name=profile, region_name=region)
    logger.debug(f"Building CloudFormation client (region={session.region_name}, profile={profile})")
    # retries are handled by Boto3StackClient so throttling is classified in one place
    botocore_config = Config(retries={"max_attempts": 1, "mode": "standard"})
    return Boto3StackClient(session.client("cloudformation", config=botocore_config), max_retries=max_retries)
