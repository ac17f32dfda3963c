"""Exception hierarchy for the transport solver."""


class TransportError(Exception):
    """Base class for all solver errors."""


class ConfigurationError(TransportError, ValueError):
    """Invalid setup detected at the point of misuse."""


class InvalidBoundaryQuery(TransportError, LookupError):
    """Reflected-direction lookup on a boundary that is not reflective."""

    def __init__(self, boundary_id, message=None):
        self.boundary_id = boundary_id
        super().__init__(
            message or f"boundary {boundary_id} is not reflective; "
                       f"no reflected direction is defined"
        )


class SolverFailure(TransportError, RuntimeError):
    """The linear solve of one component did not converge."""

    def __init__(self, component, info, message=None):
        self.component = component
        self.info = info
        super().__init__(
            message or f"linear solve failed for component {component} (info={info})"
        )


class NonConvergence(TransportError, RuntimeError):
    """An iteration reached its cap without meeting its tolerances."""

    def __init__(self, message, iterations, errors=None, keff=None):
        self.iterations = iterations
        self.errors = dict(errors or {})
        self.keff = keff
        super().__init__(message)
