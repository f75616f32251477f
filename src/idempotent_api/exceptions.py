"""Custom exceptions for the idempotency layer.

Outcomes that clients see (400, 409, 422) are plain decision values returned
by the coordinator and never travel as exceptions. The exceptions defined here
signal programming or protocol violations inside the layer itself.

Examples:
    Recording a result twice::

        from idempotent_api.exceptions import ResultAlreadyRecordedError

        try:
            entry.record_result(response)
        except ResultAlreadyRecordedError as e:
            logger.warning("idempotency.result_already_recorded", execution_id=e.execution_id)
"""


class IdempotencyError(Exception):
    """Base exception for all idempotency-related errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        """Initialize the exception with a message.

        Args:
            message: Human-readable error description.
        """
        self.message = message
        super().__init__(message)


class ResultAlreadyRecordedError(IdempotencyError):
    """A tracked request already holds a result.

    A tracked request moves from pending to done exactly once. A second
    attempt to attach a result means two executions believe they own the
    same reservation, which the store's atomic reservation rules out.

    Attributes:
        message: Human-readable error description.
        execution_id: Execution id of the tracked request.
    """

    def __init__(self, message: str, execution_id: str) -> None:
        super().__init__(message)
        self.execution_id = execution_id


class IncompleteResponseError(IdempotencyError):
    """The application returned without finishing its response.

    Raised when no response was started or the last body message still
    announced more body. Such a response is never cached.

    Attributes:
        message: Human-readable error description.
        key: The cache key whose reservation is released.
    """

    def __init__(self, message: str, key: str) -> None:
        super().__init__(message)
        self.key = key
