class UKFError(Exception):
    """Base class for all exceptions raised by the estimation engine."""

    pass


class DimensionMismatchError(ValueError, UKFError):
    """
    Raised when a model adapter returns vectors or matrices whose shapes
    disagree with its declared state_dim / noise_dim / meas_dim.
    Inherits from ValueError so callers validating inputs can catch it generically.
    """

    pass


class InvalidParameterError(ValueError, UKFError):
    """
    Raised when a filter parameter is invalid (e.g., non-positive time step,
    alpha/kappa giving N + lambda <= 0, non-positive finite-difference step).
    """

    pass


class DecompositionError(ArithmeticError, UKFError):
    """
    Raised when a covariance matrix is not positive-definite (or not finite)
    at the point where it must be factorized.
    """

    pass


class SingularMatrixError(DecompositionError):
    """
    Raised when the innovation covariance is singular or too ill-conditioned
    to produce a trustworthy Kalman gain.
    """

    pass


class JacobianError(ArithmeticError, UKFError):
    """
    Raised when a finite-difference Jacobian has a zero or non-finite column.
    """

    pass


class UninitializedFilterError(RuntimeError, UKFError):
    """
    Raised when update() or get_filter_state() is called before initialize().
    """

    pass


class MissingMeasurementError(RuntimeError, UKFError):
    """
    Raised when the correction step asks for a sensor sample that was never pushed.
    """

    pass


class MissingJacobianError(NotImplementedError, UKFError):
    """
    Raised when the selected linearization needs a Jacobian provider
    (process, noise or measurement) that the model does not implement.
    """

    pass
