"""Error taxonomy for chat exchanges and tool sessions."""


class ToolRelayError(Exception):
    """Base class for all relay errors."""


class ToolExecutionError(ToolRelayError):
    """A single tool call failed.

    Recoverable: the failure is returned to the model as an error-flagged
    tool result and the exchange continues.
    """

    def __init__(self, tool_name: str, message: str):
        super().__init__(message)
        self.tool_name = tool_name


class ToolServiceUnavailable(ToolRelayError):
    """The tool service cannot be reached at all."""


class UpstreamModelError(ToolRelayError):
    """The model service call failed or returned an unparseable response."""


class TransportError(ToolRelayError):
    """A session's persistent connection to the tool service is broken."""

    def __init__(self, session_id: str, message: str):
        super().__init__(message)
        self.session_id = session_id


class AuthorizationError(ToolRelayError):
    """The request did not carry a usable bearer token."""


class LoopBudgetExceeded(ToolRelayError):
    """The agent loop used up its turn or tool-call budget."""

    def __init__(self, message: str, turns: int, tool_calls: int):
        super().__init__(message)
        self.turns = turns
        self.tool_calls = tool_calls
