"""
Custom exception types for qinipath.

Every exception carries a machine-readable code so callers can
handle specific failure modes programmatically.
"""


class QiniPathError(Exception):
    """Base exception for all qinipath errors."""

    def __init__(self, message: str, code: str = "QINIPATH_ERROR"):
        self.code = code
        super().__init__(message)


class InputValidationError(QiniPathError, ValueError):
    """Raised when fit inputs violate the solver's input contract."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message, code="INPUT_VALIDATION_ERROR")


class SpendOutOfRangeError(QiniPathError):
    """Raised when a query asks for spend beyond a path that is not complete."""

    def __init__(self, spend: float, budget: float, label: str = ""):
        self.spend = spend
        self.budget = budget
        prefix = f"{label} " if label else ""
        msg = (
            f"{prefix}path is not fit beyond spend {budget:g} "
            f"(requested {spend:g})."
        )
        super().__init__(msg, code="SPEND_OUT_OF_RANGE")


class PairedInferenceError(QiniPathError):
    """Raised when two curves cannot be compared with paired standard errors."""

    def __init__(self, message: str = ""):
        msg = message or (
            "Paired comparisons require curves fit with paired_inference=True "
            "as well as with the same random seed, bootstrap replicates, and data."
        )
        super().__init__(msg, code="PAIRED_INFERENCE_ERROR")
