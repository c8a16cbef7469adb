"""Exception hierarchy for the resonance-combination framework."""


class ResoCombError(Exception):
    """Base class for all package-specific errors."""


class ConfigurationError(ResoCombError, ValueError):
    """Raised at construction time for malformed cut or binning configuration.

    Examples:
    - non-increasing or too-short bin edges
    - empty or incomplete threshold tables
    - mismatched breakpoint/threshold lengths
    """
