"""Exception hierarchy for kernel_chat."""


class KernelChatError(Exception):
    """Base class for all kernel_chat errors."""


class ConfigurationError(KernelChatError):
    """Raised at startup when required settings are missing or invalid."""


class BackendError(KernelChatError):
    """A chat backend call failed. Scoped to a single turn."""


class BackendUnavailableError(BackendError):
    """Network failure, timeout, authentication or server-side error."""


class BackendProtocolError(BackendError):
    """The backend returned something the client cannot interpret."""


class BackendRateLimitError(BackendError):
    """The backend rejected the request because of rate limiting."""


class ToolError(KernelChatError):
    """Base class for tool registry errors."""


class DuplicateNameError(ToolError):
    """A tool with the same name is already registered."""


class UnknownToolError(ToolError):
    """The requested tool is not registered."""


class ArgumentError(ToolError):
    """Tool arguments do not satisfy the declared parameter schema."""


class HandlerError(ToolError):
    """The tool handler raised an exception."""
