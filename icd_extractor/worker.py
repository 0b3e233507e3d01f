"""Background analyzer speaking the INIT/ANALYZE message protocol."""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from .config import ExtractorConfig
from .extractor import ExtractionEngine
from .loader import load_terminology
from .matcher import Entity
from .terminology import InitializationError, TerminologyIndex

logger = logging.getLogger(__name__)

INIT_FAILURE_REASON = "Failed to load ICD-10 database"


class MessageType(Enum):
    INIT = "INIT"
    ANALYZE = "ANALYZE"
    READY = "READY"
    PROGRESS = "PROGRESS"
    RESULT = "RESULT"
    ERROR = "ERROR"


@dataclass
class Request:
    """Message sent to the worker. ``text`` is only read for ``ANALYZE``.

    An ``ANALYZE`` left at sequence 0 is numbered by the worker when it is
    posted or handled; the assigned number is written back to the request.
    """

    type: MessageType
    sequence: int = 0
    text: str = ""


@dataclass(frozen=True)
class Response:
    type: MessageType
    sequence: int = 0
    percent: Optional[int] = None
    entities: Tuple[Entity, ...] = field(default_factory=tuple)
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.type.value, "sequence": self.sequence}
        if self.type is MessageType.PROGRESS:
            payload["percent"] = self.percent
        elif self.type is MessageType.RESULT:
            payload["entities"] = [entity.to_dict() for entity in self.entities]
        elif self.type is MessageType.ERROR:
            payload["message"] = self.message
        return payload


Listener = Callable[[Response], None]
IndexFactory = Callable[[], TerminologyIndex]


class AnalyzerWorker:
    """Serve analysis requests off the caller's thread.

    Requests are posted to an inbox queue and handled one at a time by a
    daemon thread. Replies go to ``listener`` when one is given and to the
    :attr:`responses` queue otherwise, never to both. The terminology index is
    built on the first request and reused for the lifetime of the worker.

    Posting an ``ANALYZE`` supersedes any analysis still running or queued
    with an older sequence number; superseded runs emit nothing. Sequence
    numbers only go up: unnumbered requests get the next one.
    """

    def __init__(
        self,
        config: Optional[ExtractorConfig] = None,
        *,
        terminology_path: str | Path | None = None,
        index_factory: Optional[IndexFactory] = None,
        listener: Optional[Listener] = None,
    ) -> None:
        self.config = config or ExtractorConfig()
        self.listener = listener
        self.responses: "queue.Queue[Response]" = queue.Queue()
        self.engine: Optional[ExtractionEngine] = None
        self.index_builds = 0

        self._index_factory = index_factory or (lambda: load_terminology(terminology_path, self.config))
        self._inbox: "queue.Queue[Optional[Request]]" = queue.Queue()
        self._latest_sequence = 0
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    @property
    def ready(self) -> bool:
        return self.engine is not None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._serve, name="analyzer-worker", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        if self._thread is None:
            return
        self._inbox.put(None)
        self._thread.join(timeout)
        self._thread = None

    def post(self, request: Request) -> None:
        if request.type is MessageType.ANALYZE:
            self._observe(request)
        self._inbox.put(request)

    def _serve(self) -> None:
        while True:
            request = self._inbox.get()
            if request is None:
                break
            self.handle(request)

    def handle(self, request: Request) -> None:
        """Process one request on the current thread."""
        if request.type is MessageType.INIT:
            if self.ready:
                logger.debug("Ignoring INIT, index already loaded")
                return
            self._ensure_ready(request.sequence)
        elif request.type is MessageType.ANALYZE:
            self._observe(request)
            engine = self._ensure_ready(request.sequence)
            if engine is not None:
                self._analyze(engine, request)
        else:
            logger.warning("Ignoring unknown request type: %s", request.type)

    def _ensure_ready(self, sequence: int) -> Optional[ExtractionEngine]:
        if self.engine is not None:
            return self.engine
        try:
            index = self._index_factory()
        except InitializationError as exc:
            logger.error("Terminology initialization failed: %s", exc)
            self._emit(Response(MessageType.ERROR, sequence, message=INIT_FAILURE_REASON))
            return None

        self.index_builds += 1
        engine = ExtractionEngine(index, self.config)
        with self._lock:
            engine.supersede(self._latest_sequence)
            self.engine = engine
        self._emit(Response(MessageType.READY, sequence))
        return engine

    def _analyze(self, engine: ExtractionEngine, request: Request) -> None:
        with self._lock:
            if request.sequence < self._latest_sequence:
                logger.debug("Skipping analysis %d, superseded before start", request.sequence)
                return
            session = engine.new_session(request.sequence)

        def report(percent: int) -> None:
            self._emit(Response(MessageType.PROGRESS, request.sequence, percent=percent))

        try:
            entities = session.run(request.text, report)
        except Exception as exc:
            logger.exception("Analysis %d failed", request.sequence)
            self._emit(Response(MessageType.ERROR, request.sequence, message=str(exc)))
            return

        if entities is not None:
            self._emit(Response(MessageType.RESULT, request.sequence, entities=tuple(entities)))

    def _observe(self, request: Request) -> None:
        with self._lock:
            if request.sequence == 0:
                request.sequence = self._latest_sequence + 1
            self._latest_sequence = max(self._latest_sequence, request.sequence)
            if self.engine is not None:
                self.engine.supersede(self._latest_sequence)

    def _emit(self, response: Response) -> None:
        if self.listener is not None:
            self.listener(response)
        else:
            self.responses.put(response)


__all__ = ["AnalyzerWorker", "INIT_FAILURE_REASON", "MessageType", "Request", "Response"]
