"""Configuration exceptions."""


class ConfigurationError(Exception):
    """Raised when the deployment environment is missing or malformed."""

    def __init__(self, message: str, field: str | list[str] | None = None):
        super().__init__(message)
        if field is None:
            self.fields: list[str] = []
        elif isinstance(field, str):
            self.fields = [field]
        else:
            self.fields = list(field)
