# billflow/common/exceptions.py


class BillFlowException(Exception):
    """Base exception for the billflow package."""

    pass


class JobNotFoundError(BillFlowException):
    """Raised when a job id is not present in the queue."""

    pass


class InvalidJobStateError(BillFlowException):
    """Raised when an operation is not allowed in the job's current state."""

    pass


class TaskNotFoundError(BillFlowException):
    pass


class MessagingError(BillFlowException):
    """Raised when the messaging API rejects a push or cannot be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
