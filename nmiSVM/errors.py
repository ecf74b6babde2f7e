"""Error taxonomy shared by the spectrum-SVM pipeline."""


class InvalidInputError(ValueError):
    """Malformed or inconsistent parameters or input data."""


class ConvergenceError(RuntimeError):
    """The SVM solver stopped on its iteration budget before reaching tolerance."""


class DimensionMismatchError(RuntimeError):
    """Feature or kernel dimensions disagree; indicates a programming error."""
