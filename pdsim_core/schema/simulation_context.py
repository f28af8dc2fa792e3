from typing import List

from pdsim_core.trace_parser.trace_parser import TranscriptParser


class SimulationContext:
    """Trace state for one in-flight simulation.

    Only the simulation holding the queue's active slot owns a live context,
    so the buffer and parser cursor need no locking of their own.
    """

    def __init__(self, location_indent: str = "   "):
        self.parser = TranscriptParser(location_indent=location_indent)

    @property
    def buffer(self) -> List[str]:
        return self.parser.entries

    def begin_call(self) -> None:
        """Reset the trace buffer before the next call executes."""
        self.parser.reset()

    def consume(self, line: str) -> None:
        self.parser.consume(line)

    def collect(self) -> str:
        """Join the current call's trace entries into one block."""
        return "\n".join(self.buffer)
