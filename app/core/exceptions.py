"""Domain exceptions for call handling."""


class CallCenterError(Exception):
    """Base class for call handling errors."""


class DuplicateSessionError(CallCenterError):
    """A session already exists for this call SID."""

    def __init__(self, call_sid: str):
        super().__init__(f"Session already exists for call {call_sid}")
        self.call_sid = call_sid


class SessionNotFoundError(CallCenterError):
    """No live session exists for this call SID."""

    def __init__(self, call_sid: str):
        super().__init__(f"No active session for call {call_sid}")
        self.call_sid = call_sid


class ProviderError(CallCenterError):
    """The language model or speech provider failed or timed out."""


class ToolError(CallCenterError):
    """A catalog or order backend failed while serving a tool call."""


class ProtocolViolation(CallCenterError):
    """The language model asked for tools again after receiving tool results."""
