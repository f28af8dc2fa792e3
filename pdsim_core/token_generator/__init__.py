"""Token Generator Module - Signed simulation tokens from a legacy secret"""

from pdsim_core.token_generator.token_generator import LegacyTokenGenerator, TokenGenerator

__all__ = ['LegacyTokenGenerator', 'TokenGenerator']
