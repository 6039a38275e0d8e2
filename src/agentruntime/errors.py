"""Exception taxonomy for the agent runtime."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Invalid or missing configuration; aborts the triggering operation."""


class KnowledgeLoadError(ConfigurationError):
    """A declared knowledge source could not be materialized."""


class ServiceInitializationError(RuntimeError):
    """A registered service failed to initialize."""

    def __init__(self, service_type: str, cause: BaseException) -> None:
        super().__init__(f"Service {service_type!r} failed to initialize: {cause}")
        self.service_type = service_type
