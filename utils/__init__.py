from utils.audit_logger import AuditLogger
from utils.keyed_lock import KeyedLock

__all__ = [
    "AuditLogger",
    "KeyedLock",
]
