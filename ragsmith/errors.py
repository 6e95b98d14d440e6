"""Error taxonomy for ragsmith.

Two categories are fatal to their caller: ``StructuralError`` aborts a planning
call and ``ProviderError`` aborts the current step or plan call. Everything a
tool handler raises as ``ToolExecutionError``, or as ValueError/TypeError from a
malformed argument, is turned into a result string.
"""

from __future__ import annotations


class RagsmithError(Exception):
    """Base class for all ragsmith errors."""


class StructuralError(RagsmithError):
    """Plan JSON is invalid or misses required step fields."""


class ToolResolutionError(RagsmithError):
    """No tool could be resolved for a step."""


class ToolExecutionError(RagsmithError):
    """A tool failed: missing file, disallowed command, bad regex, etc."""


class ProviderError(RagsmithError):
    """Model provider call failed (not a cancellation)."""


class OperationCancelled(RagsmithError):
    """The active planning/chat call was cancelled by the user."""


class TimeoutNonFatal(RagsmithError):
    """Summary or embedding generation timed out during indexing."""
