"""Exceptions raised by the adaptive ΔF/F processor."""


class AdaptiveDFFError(ValueError):
    """Base class for invalid inputs to the adaptive ΔF/F pipeline."""


class InvalidShapeError(AdaptiveDFFError):
    """Image series is not a 4-D numeric array."""


class InvalidSamplingPeriodError(AdaptiveDFFError):
    """Sampling period is not a positive numeric scalar."""


class InvalidTauSpecError(AdaptiveDFFError):
    """Tau argument matches none of the accepted shapes."""


class InvalidParameterError(AdaptiveDFFError):
    """Resolved time constants produce unusable window sizes."""


class ZeroBaselineError(AdaptiveDFFError):
    """Baseline contains zero or non-finite values (strict mode only)."""
