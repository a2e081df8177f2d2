"""Exception types shared by the agent, tool and transport layers."""


class FincoachError(RuntimeError):
    """Base class for every error raised by fincoach."""


class ToolExecutionError(FincoachError):
    """Raised when a requested tool cannot run or fails."""


class InvalidArguments(ToolExecutionError):
    """Raised when tool arguments do not match the tool's input schema."""


class UnknownTool(FincoachError):
    """Raised when a transcript references a tool the registry does not know."""

    def __init__(self, name: str):
        super().__init__(f"Tool '{name}' is not registered.")
        self.name = name


class DuplicateToolName(FincoachError):
    """Raised when two tools are registered under the same name."""

    def __init__(self, name: str):
        super().__init__(f"Tool '{name}' is already registered.")
        self.name = name


class DiscoveryUnavailable(FincoachError):
    """Raised when the remote tool source cannot be reached or listed."""


class ModelOracleError(FincoachError):
    """Raised when the language model call fails or is aborted."""


class BackendHttpError(FincoachError):
    """Raised when the financial backend API returns an error or a malformed body."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class UnknownToolCall(FincoachError):
    """Raised when a decision targets a call id that is not awaiting one."""

    def __init__(self, call_id: str):
        super().__init__(f"No pending tool call with id '{call_id}'.")
        self.call_id = call_id


class ConfirmationPending(FincoachError):
    """Raised when a new user message arrives while a confirmation is outstanding."""
