"""Per-rule news updaters.

Every SourceRule gets its own thread and its own `schedule.Scheduler`: one
cycle right away, then one every `interval_minutes`. Updaters never talk to
each other; the store is the only thing they share.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

import schedule

from database import DatabaseError, NewsDatabase
from newsharvest.extraction.page_extract import (
    ExtractionResult,
    FetchError,
    PageFetcher,
    extract_items,
)
from newsharvest.ingestion.rules import SourceRule

logger = logging.getLogger(__name__)


class UpdaterState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    STORING = "storing"


@dataclass
class CycleReport:
    source_url: str
    found: int = 0
    inserted: int = 0
    duplicates: int = 0
    dropped: int = 0
    store_errors: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def summary(self) -> str:
        if self.error:
            return f"[update] {self.source_url} failed: {self.error}"
        return (
            f"[update] {self.source_url} found={self.found} inserted={self.inserted} "
            f"duplicates={self.duplicates} dropped={self.dropped} store_errors={self.store_errors}"
        )


class RuleUpdater:
    """Fetch → extract → store loop for a single rule."""

    def __init__(
        self,
        rule: SourceRule,
        *,
        fetcher: PageFetcher,
        store: NewsDatabase,
        stop_event: Optional[threading.Event] = None,
        poll_seconds: float = 5.0,
    ):
        self.rule = rule
        self.fetcher = fetcher
        self.store = store
        self.stop_event = stop_event or threading.Event()
        self.poll_seconds = poll_seconds
        self.state = UpdaterState.IDLE
        self.cycles = 0
        self.last_report: Optional[CycleReport] = None
        self._scheduler = schedule.Scheduler()
        self._thread: Optional[threading.Thread] = None

    def run_cycle(self) -> CycleReport:
        report = CycleReport(source_url=self.rule.source_url)
        try:
            self.state = UpdaterState.FETCHING
            document = self.fetcher.fetch(self.rule.source_url)

            self.state = UpdaterState.EXTRACTING
            result: ExtractionResult = extract_items(self.rule, document)
            report.found = len(result.items)
            report.dropped = len(result.errors)

            self.state = UpdaterState.STORING
            for item in result.items:
                try:
                    if self.store.insert(item):
                        report.inserted += 1
                    else:
                        report.duplicates += 1
                except DatabaseError as e:
                    report.store_errors += 1
                    logger.warning(str(e))
        except FetchError as e:
            report.error = str(e)
            logger.warning(report.summary())
        except Exception as e:
            # The updater has no terminal state; the next tick retries
            report.error = f"unexpected {type(e).__name__}: {e}"
            logger.error(report.summary(), exc_info=True)
        else:
            logger.info(report.summary())
        finally:
            self.state = UpdaterState.IDLE
            self.cycles += 1
            self.last_report = report
        return report

    def _run(self) -> None:
        self.run_cycle()
        self._scheduler.every(self.rule.interval_minutes).minutes.do(self.run_cycle)
        while not self.stop_event.wait(self.poll_seconds):
            self._scheduler.run_pending()
        self._scheduler.clear()
        logger.info(f"Updater for {self.rule.source_url} stopped")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(
            target=self._run,
            name=f"updater-{self.rule.source_url}",
            daemon=True,
        )
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


class UpdaterGroup:
    """All updaters of the process, sharing one stop signal."""

    def __init__(
        self,
        rules: Iterable[SourceRule],
        *,
        fetcher: PageFetcher,
        store: NewsDatabase,
        poll_seconds: float = 5.0,
    ):
        self.stop_event = threading.Event()
        self.updaters: List[RuleUpdater] = [
            RuleUpdater(
                rule,
                fetcher=fetcher,
                store=store,
                stop_event=self.stop_event,
                poll_seconds=poll_seconds,
            )
            for rule in rules
        ]

    def start(self) -> None:
        for updater in self.updaters:
            updater.start()
        logger.info(f"Started {len(self.updaters)} news updaters")

    def stop(self, timeout: Optional[float] = None) -> None:
        self.stop_event.set()
        for updater in self.updaters:
            updater.join(timeout)
