"""Error taxonomy for the session orchestration layer."""

from __future__ import annotations


class CopilotError(RuntimeError):
    """Base class for errors reported back to the operator."""

    code = "error"


class SessionNotInitialized(CopilotError):
    """Raised when an operation needs a browser that was never allocated."""

    code = "session_not_initialized"

    def __init__(self, message: str = "Browser session is not initialized") -> None:
        super().__init__(message)


class InvalidCommand(CopilotError):
    """Raised for unknown actions or commands missing required parameters."""

    code = "invalid_command"


class ExtractionFailure(CopilotError):
    """No command could be derived from the generator output."""

    code = "extraction_failure"

    def __init__(self, raw_text: str) -> None:
        super().__init__("Could not derive a browser command from the generator response")
        self.raw_text = raw_text


class CapabilityFailure(CopilotError):
    """The browser or the generator faulted (network, timeout, navigation)."""

    code = "capability_failure"


class PausedRejection(CopilotError):
    """Instruction-driven execution was attempted while the session is paused."""

    code = "paused"

    def __init__(self, message: str = "Session is paused; resume before running instructions") -> None:
        super().__init__(message)
