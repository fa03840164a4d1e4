"""
The tail engine: catch up on past events, then poll until the stacks finish.
"""

import logging
import time
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Set

from .aggregate import EventAggregator
from .client import CloudStackClient
from .config import TailConfig
from .errors import AggregateFetchError, ClassifiedError, ErrorKind
from .models import StackEvent, Watermark
from .presenter import Presenter

logger = logging.getLogger(__name__)


class EngineState(Enum):
    IDLE = "idle"
    PREFETCHING = "prefetching"
    TAILING = "tailing"
    DONE = "done"


class TailExit(Enum):
    """Why the engine stopped polling."""
    STACK_COMPLETE = "stack_complete"
    # the owner should build a new client and start again from the watermark
    CREDENTIALS_EXPIRED = "credentials_expired"


class TailEngine:
    """
    Drives the event feed for one set of stacks.

    ``prefetch`` renders everything newer than ``config.since``; ``poll``
    then keeps fetching until one of the original stacks reaches a
    completed state or the credentials expire.
    """

    def __init__(self, client: CloudStackClient, presenter: Presenter, config: TailConfig,
                 aggregator: Optional[EventAggregator] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.client = client
        self.presenter = presenter
        self.config = config
        self.aggregator = aggregator or EventAggregator(client)
        self._sleep = sleep
        self._watermark = Watermark(config.since)
        self._state = EngineState.IDLE
        self._exit: Optional[TailExit] = None

    @property
    def watermark(self) -> datetime:
        return self._watermark.value

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def exit(self) -> Optional[TailExit]:
        return self._exit

    def _finish(self, exit: TailExit) -> TailExit:
        self._state = EngineState.DONE
        self._exit = exit
        return exit

    def _fetch(self) -> List[StackEvent]:
        return self.aggregator.fetch_events(self.config.stack_info.names, self._watermark.value)

    def is_original_stack_event(self, event: StackEvent) -> bool:
        return event.is_stack_event and event.stack_name in self.config.stack_info.original_names

    def prefetch(self) -> None:
        """
        Render all events newer than the starting watermark.

        Raises:
            AggregateFetchError: If any stack fails with a fatal error
        """
        self._state = EngineState.PREFETCHING
        logger.debug(f"Prefetching events since {self._watermark.value.isoformat()}")

        events = self._fetch()
        self._process_batch(events, detect_completion=False)

        logger.info(f"Prefetched {len(events)} events, watermark now {self._watermark.value.isoformat()}")
        self._state = EngineState.TAILING

    def poll(self) -> TailExit:
        """
        Poll for new events until an original stack completes.

        Returns:
            TailExit.STACK_COMPLETE once done, TailExit.CREDENTIALS_EXPIRED if
            the client has to be rebuilt

        Raises:
            AggregateFetchError: For fatal errors other than expired credentials
        """
        self._state = EngineState.TAILING
        logger.debug(f"Polling every {self.config.poll_interval}s from {self._watermark.value.isoformat()}")

        while True:
            try:
                completed = self.poll_step()
            except AggregateFetchError as e:
                if e.kind == ErrorKind.CREDENTIALS_EXPIRED:
                    logger.error(f"Credentials expired: {e}")
                    return self._finish(TailExit.CREDENTIALS_EXPIRED)
                raise
            except ClassifiedError as e:
                logger.warning(f"Poll failed, trying again: {e}")
                completed = False

            if completed:
                logger.info("Stack complete, stopping")
                return self._finish(TailExit.STACK_COMPLETE)

            self._sleep(self.config.poll_interval)

    def poll_step(self) -> bool:
        """
        Run a single fetch cycle.

        Returns:
            True if an original stack reached a completed state in this batch
        """
        events = self._fetch()
        if events:
            logger.debug(f"Found {len(events)} new events")
        completed = self._process_batch(events)
        return bool(completed)

    def run(self) -> TailExit:
        """Prefetch then poll, treating expired credentials the same in both phases."""
        try:
            self.prefetch()
        except AggregateFetchError as e:
            if e.kind == ErrorKind.CREDENTIALS_EXPIRED:
                logger.error(f"Credentials expired during prefetch: {e}")
                return self._finish(TailExit.CREDENTIALS_EXPIRED)
            raise
        return self.poll()

    def _process_batch(self, events: List[StackEvent], detect_completion: bool = True) -> Set[str]:
        """
        Render a sorted batch and advance the watermark.

        Completions only count while tailing; history shown by prefetch is
        rendered but never ends the run.

        Returns:
            Names of original stacks that completed in this batch
        """
        self._watermark.check_batch(events)

        completions: List[StackEvent] = []
        for event in events:
            is_original = self.is_original_stack_event(event)
            # unknown statuses raise here, before anything is rendered
            status = event.status
            self._render(event, is_original)
            self._watermark.advance(event.timestamp)

            if detect_completion and is_original and status.is_complete:
                completions.append(event)

        # outputs, separators and notifications follow the whole batch
        for event in completions:
            self._on_stack_complete(event)
        return {event.stack_name for event in completions}

    def _render(self, event: StackEvent, is_original: bool) -> None:
        try:
            self.presenter.render_event(event, is_original)
        except Exception:
            logger.exception(f"Failed to render event {event.event_id}")

    def _on_stack_complete(self, event: StackEvent) -> None:
        if self.config.show_outputs:
            try:
                outputs = self.client.describe_stack_outputs(event.stack_name)
                self.presenter.render_outputs(event.stack_name, outputs)
            except Exception:
                logger.exception(f"Failed to show outputs of {event.stack_name}")

        if self.config.show_separators:
            try:
                self.presenter.render_separator()
            except Exception:
                logger.exception("Failed to render separator")

        if self.config.show_notifications:
            try:
                self.presenter.notify_completion(
                    self.config.sound,
                    f"{event.stack_name} {event.resource_status}",
                )
            except Exception:
                logger.exception("Failed to send completion notification")
