# Core record services
from .hasher import Hasher
from .cipher import Cipher
from .record import Record, AsyncRecord
from .service import RecordService

__all__ = [
    "Hasher",
    "Cipher",
    "Record",
    "AsyncRecord",
    "RecordService",
]
