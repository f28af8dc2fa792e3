"""Diagnostic Sink Module - Interception of the backend's rule-evaluation diagnostics"""

from pdsim_core.diagnostic_sink.diagnostic_sink import (
    ConsoleDiagnosticSink,
    DiagnosticFilter,
    DiagnosticInterceptor,
    DiagnosticSink,
    LoggingDiagnosticSink,
    get_interceptor,
    get_logging_sink,
)

__all__ = [
    'ConsoleDiagnosticSink',
    'DiagnosticFilter',
    'DiagnosticInterceptor',
    'DiagnosticSink',
    'LoggingDiagnosticSink',
    'get_interceptor',
    'get_logging_sink',
]
