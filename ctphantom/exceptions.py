from typing import Optional


class PhantomError(Exception):
    """Base class for errors raised while building or writing a phantom."""

    pass


class ConsistencyError(PhantomError):
    """Represents a dimension or voxel-size mismatch between slices of one phantom."""

    pass


class OutOfRangeError(PhantomError, ValueError):
    """Represents a CT number that falls outside every classification bracket."""

    def __init__(self, hu: float, message: Optional[str] = None):
        self.hu = hu
        if message is None:
            message = f"Hounsfield number {hu} out of bounds."
        super().__init__(message)


class ResizeError(PhantomError):
    """Represents a degenerate crop rectangle, or one outside the slice."""

    pass


class EmptyResultError(ResizeError):
    """Represents a resize that leaves no slices in the phantom."""

    pass


class UnknownStructureError(PhantomError, KeyError):
    """Represents a structure name that is not in the structure map."""

    def __str__(self):
        return Exception.__str__(self)


class NotFoundError(PhantomError, KeyError):
    """Represents a material name that is not in the material table."""

    def __str__(self):
        return Exception.__str__(self)


class ConversionCancelled(PhantomError):
    """Represents a conversion stopped by its cancellation event."""

    pass
