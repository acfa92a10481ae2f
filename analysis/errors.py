"""
Error taxonomy for the analysis pipeline.

File-access errors are preconditions and abort an analysis. Knowledge and
external-tool errors are recovered where they occur and only show up as
degraded fields in the report.
"""

from typing import Any


class AnalysisError(Exception):
    """Base class for analysis errors."""

    code = "ANALYSIS_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }


class FileAccessError(AnalysisError):
    """The source file could not be used."""

    code = "FILE_ERROR"

    def __init__(self, message: str, path: str):
        super().__init__(message, {"path": path})
        self.path = path


class FileNotFound(FileAccessError):
    code = "FILE_NOT_FOUND"

    def __init__(self, path: str):
        super().__init__("File not found", path)


class NotASourceFile(FileAccessError):
    code = "NOT_A_SOURCE_FILE"

    def __init__(self, path: str):
        super().__init__("Not a Solidity source file", path)


class FileTooLarge(FileAccessError):
    code = "FILE_TOO_LARGE"

    def __init__(self, path: str, size: int, limit: int):
        super().__init__(f"File too large: {size} bytes (limit {limit})", path)
        self.details.update({"size": size, "limit": limit})


class KnowledgeUnavailable(AnalysisError):
    """The vector-search backend could not serve a request."""

    code = "KNOWLEDGE_UNAVAILABLE"


class ExternalToolNotFound(AnalysisError):
    code = "TOOL_NOT_FOUND"

    def __init__(self, tool: str, hint: str | None = None):
        super().__init__(f"Tool not found: {tool}", {"tool": tool, "hint": hint})
        self.tool = tool
        self.hint = hint


class ExternalToolExecutionFailed(AnalysisError):
    code = "TOOL_EXEC_ERROR"

    def __init__(self, message: str, tool: str):
        super().__init__(message, {"tool": tool})
        self.tool = tool


class AnalysisFailed(AnalysisError):
    """Unexpected internal fault during an analysis."""

    code = "ANALYSIS_FAILED"
