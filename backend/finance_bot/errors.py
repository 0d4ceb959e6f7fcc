"""Exception types raised by the message-handling pipeline."""


class FinanceBotError(Exception):
    """Base class; the message is safe to show to the end user."""


class ConfigurationError(FinanceBotError):
    pass


class PromptNotFoundError(FinanceBotError):
    def __init__(self, name: str, reason: str | None = None) -> None:
        self.name = name
        message = f"Prompt '{name}' not found or invalid in the prompt store. Please configure it correctly."
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class ModelRequestError(FinanceBotError):
    pass


class StructuredOutputError(FinanceBotError):
    """The model answered, but not with an object matching the requested schema."""

    def __init__(self, schema_name: str, detail: str) -> None:
        self.schema_name = schema_name
        self.detail = detail
        super().__init__(f"Invalid structured output for '{schema_name}': {detail}")


class QueryGenerationError(FinanceBotError):
    pass


class UnsafeQueryError(FinanceBotError):
    pass


class UnresolvedReferenceError(FinanceBotError):
    def __init__(self, kind: str, name: object) -> None:
        self.kind = kind
        self.name = name
        if name is None or name == "":
            super().__init__(f"{kind} was not specified")
        else:
            super().__init__(f"{kind} not found: {name}")


class UnsupportedTransactionTypeError(FinanceBotError):
    def __init__(self, type_: object) -> None:
        self.type = type_
        super().__init__(f"Unknown transaction type: {type_}")


class UnsupportedMediaError(FinanceBotError):
    def __init__(self, mime_type: str, detail: str | None = None) -> None:
        self.mime_type = mime_type
        super().__init__(detail or f"Unsupported file type: {mime_type}")


class AccountTypeError(FinanceBotError):
    """An account exists but is of the wrong type for the operation."""
