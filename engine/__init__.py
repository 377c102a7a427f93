from .errors import AcquisitionError, ErrorKind
from .runtime import get_runtime_info

__all__ = [
    "AcquisitionError",
    "ErrorKind",
    "get_runtime_info",
]
