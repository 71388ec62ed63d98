# Error taxonomy shared by every pipeline stage


class SegmentationError(Exception):
    """Base class for pipeline errors."""


class InputError(SegmentationError, ValueError):
    """Malformed or missing required fields in moments or demographics."""


class ConfigurationError(SegmentationError, ValueError):
    """Invalid parameters, or an artifact too degenerate to model."""


class PipelineCancelled(SegmentationError):
    """Raised at a cooperative cancellation point once the caller's event is set."""


class NonConvergenceWarning(UserWarning):
    """Sampler or k-means stopped at its iteration cap without stabilizing."""
