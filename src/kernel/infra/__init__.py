"""
Infrastructure adapters: retry, record store, messaging gateway.
"""

from src.kernel.infra.retry import RetryExecutor, RetryPolicy, OperationResult, classify
from src.kernel.infra.record_store import RecordStore, InMemoryRecordStore, SqlRecordStore
from src.kernel.infra.messaging import (
    MessagingGateway,
    DeliveryReceipt,
    HttpSmsGateway,
    LogSmsGateway,
    build_gateway,
)

__all__ = [
    "RetryExecutor",
    "RetryPolicy",
    "OperationResult",
    "classify",
    "RecordStore",
    "InMemoryRecordStore",
    "SqlRecordStore",
    "MessagingGateway",
    "DeliveryReceipt",
    "HttpSmsGateway",
    "LogSmsGateway",
    "build_gateway",
]
