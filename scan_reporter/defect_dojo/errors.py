from __future__ import annotations


class DojoReporterError(Exception):
    """Base error for the DefectDojo reporter."""


class ConfigurationError(DojoReporterError, ValueError):
    """Required input is missing or invalid. Raised before any network call."""


class ResolutionError(DojoReporterError):
    """Product or engagement could not be resolved."""


class AmbiguousMatchError(ResolutionError):
    """More than one entity shares the requested name and the policy requires uniqueness."""
