"""
Exception hierarchy for the training and evaluation harness.
"""


class HarnessError(Exception):
    """Base class for all harness errors."""


class LoadError(HarnessError):
    """A source item is missing or corrupt."""

    def __init__(self, message: str, item: str = None):
        super().__init__(message)
        self.item = item


class ShapeError(HarnessError):
    """Feature-vector length or image dimensions do not match what is expected."""


class TrainingError(HarnessError):
    """Training diverged (non-finite loss)."""


class InferenceError(HarnessError):
    """Inference was requested before any model is ready."""


class RunStateError(HarnessError):
    """A training run was started while another one is still running."""
