from typing import Optional


class PlanningClientError(RuntimeError):
    """Base class for everything raised by the planning service clients."""


class TransportError(PlanningClientError):
    def __init__(self, message: str, status_code: Optional[int] = None, url: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class AuthenticationError(TransportError):
    pass


class PlanningFailedError(PlanningClientError):
    """The service reported that it could not produce a plan."""


class ContractViolationError(PlanningClientError):
    """The response does not match any shape the service is known to return."""


class UnsupportedPlanFormatError(ContractViolationError):
    def __init__(self, plan_format: Optional[str]):
        super().__init__(f"Unsupported plan format: {plan_format}")
        self.plan_format = plan_format


class PollTimeoutError(PlanningClientError):
    pass
