"""Trace Parser Module - Streaming state machine for rule-evaluation transcripts"""

from pdsim_core.trace_parser.trace_parser import (
    LineKind,
    ParserState,
    TranscriptParser,
    classify_line,
    rewrite_rule_check,
)

__all__ = ['LineKind', 'ParserState', 'TranscriptParser', 'classify_line', 'rewrite_rule_check']
