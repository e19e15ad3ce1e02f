"""
Exceptions raised by the IFUtools routines. Every routine in this package is a
leaf: none of these are caught internally, they go straight to the caller.
"""


class IFUToolsError(Exception):
    """Base class for IFUtools errors"""
    def __init__(self, message="IFUtools error"):
        self.message = message
        super().__init__(self.message)


class InsufficientDataError(IFUToolsError):
    """
    Exception raised when a continuum window selects fewer samples than the
    requested polynomial order requires
    """
    def __init__(self, npoints=0, order=0, message="Too few samples in continuum window: "):
        self.npoints = npoints
        self.order = order
        super().__init__(
            message + "{0} selected, {1} required for order {2}".format(npoints, order + 1, order)
        )


class DivideByZeroError(IFUToolsError):
    """Exception raised when the continuum evaluates to zero inside the normalization range

    Attributes:
    -----------
    indices -- positions (into the original sample) where the continuum is zero
    message -- explanation of error
    """
    def __init__(self, indices=(), message="Continuum is zero at sample indices: "):
        self.indices = list(indices)
        super().__init__(message + str(self.indices))


class InvalidDimensionError(IFUToolsError):
    """
    Exception raised when computed sub-image bounds fall outside the image
    """
    def __init__(self, message="Sub-image bounds fall outside the image"):
        super().__init__(message)


class InvalidArgumentError(IFUToolsError):
    """
    Exception raised when a required argument is missing or malformed
    """
    def __init__(self, message="Missing or malformed argument"):
        super().__init__(message)
