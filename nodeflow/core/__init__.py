"""Core layer - Pure business logic and algorithms.

The execution engine lives in ``nodeflow.core.execution_engine``; it depends
on the node executors, which in turn use this package.
"""

from nodeflow.core.context import ExecutionContext
from nodeflow.core.encryption import CredentialEncryption
from nodeflow.core.graph import compute_execution_order
from nodeflow.core.retry import RetryPolicy, with_retry

__all__ = [
    "CredentialEncryption",
    "ExecutionContext",
    "RetryPolicy",
    "compute_execution_order",
    "with_retry",
]
