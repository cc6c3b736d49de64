"""
Error types raised by the SQL <-> schema graph translator
"""
from typing import List, Optional


class SchemaSyncError(Exception):
    """Base class for every error raised by schema-sync"""


class ValidationError(SchemaSyncError):
    """Blocking syntax issue found before parsing"""

    def __init__(self, findings: List[str], message: Optional[str] = None):
        self.findings = list(findings)
        blocking = [f for f in self.findings if not f.startswith('Warning:')]
        if message is None:
            message = blocking[0] if blocking else "SQL validation failed"
        super().__init__(message)


class ParseError(SchemaSyncError):
    """Malformed DDL or nothing recoverable in the text"""


class TokenizeError(ParseError):
    """Raised by the tokenizer for unterminated literals and comments"""

    def __init__(self, message: str, line: int, col: int):
        self.line = line
        self.col = col
        super().__init__(f"{message} (line {line}, column {col})")


class ApplyError(SchemaSyncError):
    """Parse succeeded but produced no usable tables"""


class ApplyInProgressError(SchemaSyncError):
    """Another SQL apply is still running"""


class CompletionError(SchemaSyncError):
    """The AI completion provider failed to return usable text"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)
