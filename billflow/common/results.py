# billflow/common/results.py
"""Outcome types returned by job handlers.

A handler tells the processor how a job ended instead of raising into the
worker loop, so the retry-or-fail decision is an explicit branch.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Union


@dataclass(frozen=True)
class Ok:
    result: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RetryableError:
    reason: str
    exception_type: str = "RetryableError"


@dataclass(frozen=True)
class FatalError:
    reason: str
    exception_type: str = "FatalError"


JobResult = Union[Ok, RetryableError, FatalError]
