"""
Guards applied to raw model output before the rest of the app touches it.
"""

from .json_clean import (  # noqa: F401
    EmptyInput,
    ErrorCode,
    LLMJsonError,
    RecoveryResult,
    UnrecoverableSyntax,
    detect_truncation,
    parse_llm_json,
    recover_json,
)
