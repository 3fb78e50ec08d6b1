from .slice import PhantomSlice
from .phantom import Phantom

__all__ = ["PhantomSlice", "Phantom"]
