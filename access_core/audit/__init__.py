from .recorder import AuditRecorder, AuditRecordDropped, build_entry
from .sinks import AuditSink, DatabaseAuditSink, InMemoryAuditSink, RedisStreamAuditSink

__all__ = [
    "AuditRecorder",
    "AuditRecordDropped",
    "AuditSink",
    "DatabaseAuditSink",
    "InMemoryAuditSink",
    "RedisStreamAuditSink",
    "build_entry",
]
