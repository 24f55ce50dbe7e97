class AgentMeterError(Exception):
    """
    base class for every error agentmeter raises on purpose.
    """


class RecordValidationError(AgentMeterError):
    """
    a raw provider entry does not carry the fields a canonical
    record needs. The normalizer turns this into a skip, it never
    reaches the caller.
    """

    def __init__(self, reason: "str", message: "str" = "") -> "None":
        super().__init__(message or reason)
        self.reason = reason


class SourceUnavailableError(AgentMeterError):
    """
    a provider's data source could not be read or parsed. Fatal for
    that provider's sync only.
    """

    def __init__(self, provider: "str", message: "str") -> "None":
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class StorageError(AgentMeterError):
    """
    a transactional write against the usage store failed and was
    rolled back.
    """
