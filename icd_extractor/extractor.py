"""Extraction sessions: tokenize, match and assemble coded entities."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Callable, Generator, Iterable, List, Optional

from .config import ExtractorConfig
from .matcher import Entity, PhraseMatcher
from .terminology import MatchCandidate, TerminologyIndex
from .tokenizer import tokenize

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


def assemble_entities(entities: Iterable[Entity]) -> List[Entity]:
    """Order accepted entities by position in the source text."""
    return sorted(entities, key=lambda entity: (entity.start, entity.end))


class ExtractionSession:
    """A single analysis run tagged with a sequence number.

    Starting a newer session on the same engine supersedes this one. A
    superseded session stops at its next batch boundary and returns ``None``
    without reporting progress or a result.
    """

    def __init__(self, engine: "ExtractionEngine", sequence: int) -> None:
        self.engine = engine
        self.sequence = sequence

    def is_current(self) -> bool:
        return self.engine.current_sequence == self.sequence

    def run(self, text: str, on_progress: Optional[ProgressCallback] = None) -> Optional[List[Entity]]:
        steps = self._steps(text, on_progress)
        while True:
            try:
                next(steps)
            except StopIteration as stop:
                return stop.value

    async def run_async(
        self,
        text: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Optional[List[Entity]]:
        """Like :meth:`run`, handing control back to the event loop between batches."""
        steps = self._steps(text, on_progress)
        while True:
            try:
                next(steps)
            except StopIteration as stop:
                return stop.value
            await asyncio.sleep(0)

    def _steps(
        self,
        text: str,
        on_progress: Optional[ProgressCallback],
    ) -> Generator[None, None, Optional[List[Entity]]]:
        config = self.engine.config
        text = self._truncate(text or "", config.max_text_length)

        if not text.strip():
            if not self.is_current():
                return self._discard()
            _notify(on_progress, 100)
            return []

        tokens = tokenize(text, min_length=config.min_token_length)
        scan = self.engine.matcher.scan(text, tokens)
        for progress in scan:
            if not self.is_current():
                return self._discard()
            _notify(on_progress, progress.percent)
            if not scan.finished:
                yield

        if not self.is_current():
            return self._discard()
        entities = assemble_entities(scan.entities)
        logger.info(
            "Analysis %d finished: %d tokens, %d entities",
            self.sequence,
            len(tokens),
            len(entities),
        )
        return entities

    def _truncate(self, text: str, limit: int) -> str:
        if len(text) <= limit:
            return text
        logger.warning("Input of %d characters truncated to %d", len(text), limit)
        return text[:limit]

    def _discard(self) -> None:
        logger.debug(
            "Analysis %d superseded by %d, discarding output",
            self.sequence,
            self.engine.current_sequence,
        )
        return None


def _notify(on_progress: Optional[ProgressCallback], percent: int) -> None:
    if on_progress is not None:
        on_progress(percent)


class ExtractionEngine:
    """Caller-owned entry point holding the shared index and the session counter."""

    def __init__(self, index: TerminologyIndex, config: Optional[ExtractorConfig] = None) -> None:
        self.index = index
        self.config = config or ExtractorConfig()
        self.matcher = PhraseMatcher.from_config(index, self.config)
        self._sequence = 0
        self._lock = threading.Lock()

    @property
    def current_sequence(self) -> int:
        with self._lock:
            return self._sequence

    def new_session(self, sequence: Optional[int] = None) -> ExtractionSession:
        """Open a session that supersedes every earlier one.

        Without ``sequence`` the next counter value is used. An explicit
        sequence older than the current one yields a session that is already
        stale.
        """
        with self._lock:
            if sequence is None:
                sequence = self._sequence + 1
            self._sequence = max(self._sequence, sequence)
        return ExtractionSession(self, sequence)

    def supersede(self, sequence: int) -> None:
        """Invalidate every session older than ``sequence`` without opening a new one."""
        with self._lock:
            self._sequence = max(self._sequence, sequence)

    def extract(self, text: str, on_progress: Optional[ProgressCallback] = None) -> List[Entity]:
        """Analyse ``text`` synchronously in a fresh session.

        A run superseded by a concurrent call returns an empty list.
        """
        result = self.new_session().run(text, on_progress)
        return result if result is not None else []

    async def extract_async(
        self,
        text: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Optional[List[Entity]]:
        return await self.new_session().run_async(text, on_progress)

    def search(self, text: str) -> List[MatchCandidate]:
        """Instant lookup of a typed query against the index."""
        return self.index.search(
            text,
            limit=self.config.search_limit,
            max_distance=self.config.search_threshold,
        )


__all__ = ["Entity", "ExtractionEngine", "ExtractionSession", "assemble_entities"]
