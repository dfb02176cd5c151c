"""
Shared exception hierarchy for the flow compiler.
"""


class FlowCompilerError(Exception):
    """Base class for all compiler related errors."""


class ValidationPhaseError(FlowCompilerError):
    """Raised when the flow definition fails structural or payload checks."""


class LoweringError(FlowCompilerError):
    """Raised when converting the flow graph into a program fails."""


class LookupFailedError(FlowCompilerError):
    """Raised when an external record (flow, branch) cannot be resolved."""


class SubmissionError(FlowCompilerError):
    """Raised when the compiled program cannot be handed to the engine sink."""
