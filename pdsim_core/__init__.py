"""pdsim Core - Permission denied simulator

This module contains the core simulator components including:
- Simulator: Replays denied calls under a simulate/debug identity
- SimulationQueue: Process-wide serialization of simulation runs
- DiagnosticInterceptor: Captures rule-evaluation diagnostics from a sink
- TranscriptParser: Folds rule-evaluation transcripts into traces
- LegacyTokenGenerator: Signs simulation tokens with a legacy secret

"""

__all__ = [
    'Simulator',
    'SimulatorProxy',
    'is_permission_denied',
    'SimulationQueue',
    'DiagnosticInterceptor',
    'TranscriptParser',
    'LegacyTokenGenerator',
]

# Lazy imports using PEP 562 __getattr__
# This allows importing pdsim_core without pulling in PyJWT or the settings
# stack unless the specific classes are accessed


def __getattr__(name: str):
    """Lazy import for module-level attributes (PEP 562)."""
    if name in ('Simulator', 'SimulatorProxy', 'is_permission_denied'):
        from pdsim_core import simulator
        return getattr(simulator, name)
    elif name == 'SimulationQueue':
        from pdsim_core.simulation_queue.simulation_queue import SimulationQueue
        return SimulationQueue
    elif name == 'DiagnosticInterceptor':
        from pdsim_core.diagnostic_sink.diagnostic_sink import DiagnosticInterceptor
        return DiagnosticInterceptor
    elif name == 'TranscriptParser':
        from pdsim_core.trace_parser.trace_parser import TranscriptParser
        return TranscriptParser
    elif name == 'LegacyTokenGenerator':
        from pdsim_core.token_generator.token_generator import LegacyTokenGenerator
        return LegacyTokenGenerator
    else:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
