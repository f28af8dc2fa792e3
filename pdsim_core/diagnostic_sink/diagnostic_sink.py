from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Optional, Protocol, Union
import logging
import re
import weakref

from pdsim_core.schema.simulation_context import SimulationContext

logger = logging.getLogger(__name__)


class LineFilter(Protocol):
    """Callable deciding whether a diagnostic line is consumed (True) or passed through (False)."""
    def __call__(self, line: str) -> bool:
        ...


class DiagnosticSink(Protocol):
    """Protocol for the process-wide channel the database client writes diagnostics to.

    ``install`` is the only operation the simulator needs. Lines no installed
    filter consumes must reach the original destination unchanged.
    """
    def install(self, line_filter: LineFilter) -> None:
        ...


class ConsoleDiagnosticSink:
    """Print-style diagnostic channel.

    The client calls ``emit(*parts)`` the way it would call ``print``; parts are
    joined with a single space into one message.

    Example:
        sink = ConsoleDiagnosticSink()
        sink.emit("FIREBASE: Attempt to read /users/abc with auth=", {"uid": "abc"})
    """
    def __init__(self, passthrough: Callable[[str], None] = print):
        self.passthrough = passthrough
        self.filters: List[LineFilter] = []

    def install(self, line_filter: LineFilter) -> None:
        # Newest filter first, so it sees lines before anybody installed earlier.
        self.filters.insert(0, line_filter)

    def emit(self, *parts) -> None:
        message = " ".join(str(part) for part in parts)
        for line_filter in self.filters:
            if line_filter(message):
                return
        self.passthrough(message)


class _RecordFilter(logging.Filter):
    def __init__(self, line_filter: LineFilter):
        super().__init__()
        self.line_filter = line_filter

    def filter(self, record: logging.LogRecord) -> bool:
        # logging keeps records for which the filter returns True
        return not self.line_filter(record.getMessage())


class LoggingDiagnosticSink:
    """Diagnostic channel backed by a named ``logging`` logger.

    Installing a filter attaches a ``logging.Filter`` to the logger: consumed
    records are suppressed, every other record propagates to the logger's
    handlers untouched. Loggers drop records below their level before any
    filter runs, so installation also enables the logger for ``level``, the
    level the client writes its diagnostics at.
    """
    def __init__(self, logger_name: str = "firebase", level: Union[int, str] = logging.DEBUG):
        self.logger = logging.getLogger(logger_name)
        self.level = level if isinstance(level, int) else logging.getLevelName(level.upper())
        if not isinstance(self.level, int):
            raise ValueError(f"Unknown logging level: {level!r}")

    def install(self, line_filter: LineFilter) -> None:
        if not self.logger.isEnabledFor(self.level):
            self.logger.setLevel(self.level)
        self.logger.addFilter(_RecordFilter(line_filter))


class DiagnosticFilter:
    """Filter routing prefixed rule-evaluation lines to a consumer.

    Both the predicate (one or more ``<prefix>`` markers, each optionally
    followed by a newline) and the strip rule are fixed at construction.
    """
    def __init__(self, prefix: str, route: Callable[[str], None]):
        self.prefix = prefix
        self.pattern = re.compile(r"^(?:" + re.escape(prefix) + r"\n?)+")
        self.route = route

    def matches(self, line: str) -> bool:
        return self.pattern.match(line) is not None

    def strip(self, line: str) -> str:
        return self.pattern.sub("", line, count=1)

    def __call__(self, line: str) -> bool:
        if not self.matches(line):
            return False
        self.route(self.strip(line))
        return True


class DiagnosticInterceptor:
    """Captures rule-evaluation diagnostics from a sink into the active simulation context.

    The filter is installed at most once per interceptor and then stays installed;
    later simulations reuse it by activating their own context with ``capturing``.
    Only one context can be active, so every simulator sharing a sink must also
    share the queue that serializes its simulations (see ``bind_queue``).
    """
    def __init__(self, sink: DiagnosticSink, prefix: str = "FIREBASE: "):
        self.sink = sink
        self.filter = DiagnosticFilter(prefix, self._route)
        self.installed = False
        self.queue: Optional[Any] = None
        self._active: Optional[SimulationContext] = None

    def bind_queue(self, queue: Any) -> None:
        """Tie this interceptor to the queue that serializes its simulations.

        Raises:
            ValueError: If the interceptor is already bound to a different queue
        """
        if self.queue is None:
            self.queue = queue
        elif self.queue is not queue:
            raise ValueError(
                f"Sink {self.sink!r} is already used with a different simulation queue; "
                "simulators sharing a diagnostic sink must share their queue"
            )

    def ensure_installed(self) -> None:
        """Install the filter on the sink unless it is already installed."""
        if self.installed:
            return
        self.sink.install(self.filter)
        self.installed = True
        logger.debug("Installed diagnostic filter on %r", self.sink)

    @contextmanager
    def capturing(self, context: SimulationContext) -> Iterator[SimulationContext]:
        """Route captured lines into ``context`` for the duration of the block."""
        self._active = context
        try:
            yield context
        finally:
            self._active = None

    def _route(self, line: str) -> None:
        if self._active is None:
            logger.debug("Dropping diagnostic line outside of a simulation: %r", line)
            return
        self._active.consume(line)


# One interceptor per sink for the lifetime of the sink
_interceptors: "weakref.WeakKeyDictionary[object, DiagnosticInterceptor]" = weakref.WeakKeyDictionary()
_logging_sinks: dict[str, LoggingDiagnosticSink] = {}


def get_interceptor(sink: DiagnosticSink, prefix: str = "FIREBASE: ") -> DiagnosticInterceptor:
    """Get the interceptor for ``sink``, creating it on first use."""
    interceptor = _interceptors.get(sink)
    if interceptor is None:
        interceptor = DiagnosticInterceptor(sink, prefix)
        _interceptors[sink] = interceptor
    elif interceptor.filter.prefix != prefix:
        raise ValueError(
            f"Sink {sink!r} is already intercepted with prefix "
            f"{interceptor.filter.prefix!r}, not {prefix!r}"
        )
    return interceptor


def get_logging_sink(logger_name: str, level: Union[int, str] = logging.DEBUG) -> LoggingDiagnosticSink:
    """Get the shared logging sink for ``logger_name``.

    A later call asking for a lower ``level`` lowers the shared sink's level.
    """
    sink = _logging_sinks.get(logger_name)
    if sink is None:
        sink = LoggingDiagnosticSink(logger_name, level)
        _logging_sinks[logger_name] = sink
        return sink
    requested = LoggingDiagnosticSink(logger_name, level).level
    if requested < sink.level:
        sink.level = requested
        if not sink.logger.isEnabledFor(requested):
            sink.logger.setLevel(requested)
    return sink
