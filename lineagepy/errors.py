"""Exceptions raised by the decompression routines."""


class ModelSpecificationError(ValueError):
    """Raised when a model kind is unknown or its payload is missing."""


class ParameterDomainError(ValueError):
    """Raised when a parameter lies outside the domain of a link function."""
