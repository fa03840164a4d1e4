"""
Concurrent event fetching across stacks.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Set

from .client import CloudStackClient
from .config import DEFAULT_MAX_WORKERS
from .errors import AggregateFetchError, ClassifiedError
from .models import StackEvent

logger = logging.getLogger(__name__)


@dataclass
class StackFetchResult:
    """Events collected for one stack in one fetch cycle."""
    stack_name: str
    events: List[StackEvent] = field(default_factory=list)
    pages: int = 0
    error: Optional[ClassifiedError] = None


class EventAggregator:
    """Fetches new events for many stacks in parallel and merges them in time order."""

    def __init__(self, client: CloudStackClient, max_workers: int = DEFAULT_MAX_WORKERS):
        self.client = client
        self.max_workers = max_workers

    def fetch_stack_events(self, stack_name: str, since: datetime) -> StackFetchResult:
        """
        Page through the events of one stack until reaching ``since``.

        Pages are newest first, so the walk stops at the first event at or
        before ``since``. Errors are returned on the result together with
        whatever was collected before the failure.
        """
        result = StackFetchResult(stack_name=stack_name)
        seen_event_ids: Set[str] = set()
        next_token: Optional[str] = None

        try:
            while True:
                page = self.client.list_stack_events(stack_name, next_token)
                result.pages += 1

                reached_since = False
                for event in page.events:
                    if event.timestamp <= since:
                        reached_since = True
                        break
                    if event.event_id in seen_event_ids:
                        continue
                    seen_event_ids.add(event.event_id)
                    result.events.append(event)

                if reached_since or not page.next_token:
                    break
                next_token = page.next_token
        except ClassifiedError as e:
            result.error = e

        logger.debug(f"Fetched {len(result.events)} new events for {stack_name} in {result.pages} pages")
        return result

    def fetch_events(self, stacks: Iterable[str], since: datetime) -> List[StackEvent]:
        """
        Fetch every event newer than ``since`` for all stacks.

        Args:
            stacks: Stack names to fetch
            since: Only events strictly newer than this are returned

        Returns:
            Events from all stacks sorted by (timestamp, event id)

        Raises:
            AggregateFetchError: As soon as any stack fails with a fatal error
        """
        stack_names = sorted(set(stacks))
        if not stack_names:
            return []

        collected: List[StackEvent] = []
        executor = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(stack_names)),
            thread_name_prefix="cftail-fetch",
        )
        try:
            futures = [
                executor.submit(self.fetch_stack_events, stack_name, since)
                for stack_name in stack_names
            ]
            for future in as_completed(futures):
                result = future.result()
                if result.error is not None:
                    if result.error.kind.is_fatal:
                        logger.error(f"Fetching events for {result.stack_name} failed: {result.error}")
                        raise AggregateFetchError(result.error)
                    logger.warning(
                        f"Fetching events for {result.stack_name} failed ({result.error.kind.value}), "
                        f"keeping {len(result.events)} events and retrying next cycle: {result.error.message}"
                    )
                collected.extend(result.events)
        finally:
            # do not wait on slow stacks once we are bailing out
            executor.shutdown(wait=False, cancel_futures=True)

        collected.sort(key=lambda event: event.sort_key)
        return collected
