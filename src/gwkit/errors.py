from __future__ import annotations


class GwkitError(Exception):
    """Base class for failures that abort a whole generation run."""


class ConfigurationError(GwkitError):
    """Invalid or conflicting generator options."""


class DescriptorError(GwkitError):
    """The generation request references something that cannot be resolved."""


class RenderError(GwkitError):
    """An artifact could not be rendered into well-formed source."""


class NoTargetService(Exception):
    """
    Skip signal: a generation unit has no service with an HTTP binding.

    Not a GwkitError: the assembler catches it per unit and keeps going.
    """

    def __init__(self, file_name: str) -> None:
        super().__init__(f"{file_name}: no target service defined in the file")
        self.file_name = file_name
