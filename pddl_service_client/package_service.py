import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
from urllib.parse import urljoin

from .errors import ContractViolationError, PlanningFailedError, PollTimeoutError
from .models import Plan, PlannerResponseHandler, PlanningRequest, PlanParser
from .normalize import append_plan_text
from .service import CallContext, PlannerService


logger = logging.getLogger(__name__)

NO_PLAN_IN_OUTPUT = "No plan found in the planner output.\n"

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]


@dataclass(frozen=True)
class Envelope:
    """Structured ``{status, result, Error}`` response."""

    status: Optional[str]
    result: Union[str, Dict[str, Any], None]
    error: Optional[str]

    @property
    def callback_url(self) -> Optional[str]:
        return self.result if isinstance(self.result, str) else None

    @property
    def structured_result(self) -> Optional[Dict[str, Any]]:
        return self.result if isinstance(self.result, dict) else None


@dataclass(frozen=True)
class BarePlans:
    """Plan text returned directly under top-level ``*plan*`` keys."""

    plans: Dict[str, Any]
    stdout: Optional[str] = None
    stderr: Optional[str] = None


@dataclass(frozen=True)
class Unmatched:
    reason: str


Decoded = Union[Envelope, BarePlans, Unmatched]


ENVELOPE_KEYS = ("status", "result", "Error")


def _has_envelope_keys(body: Any) -> bool:
    return isinstance(body, dict) and any(key in body for key in ENVELOPE_KEYS)


def decode_envelope(body: Any) -> Decoded:
    if not isinstance(body, dict):
        return Unmatched(f"response is not an object: {json.dumps(body)}")
    if not _has_envelope_keys(body):
        return Unmatched("no 'status', 'result' or 'Error' element")
    result = body.get("result")
    if result is not None and not isinstance(result, (str, dict)):
        return Unmatched("Element 'result' should be a /check... url or a result object.")
    return Envelope(status=body.get("status"), result=result, error=body.get("Error"))


def decode_bare_plans(body: Any) -> Decoded:
    if not isinstance(body, dict):
        return Unmatched(f"response is not an object: {json.dumps(body)}")
    plans = {key: value for key, value in body.items() if "plan" in key}
    if not plans:
        return Unmatched("Missing 'result' or '*plan*' elements.")
    return BarePlans(plans=plans, stdout=body.get("stdout"), stderr=body.get("stderr"))


def decode_package_response(body: Any) -> Decoded:
    """Tries the structured envelope first, then the bare plan keys."""
    decoded = decode_envelope(body)
    if isinstance(decoded, Unmatched) and not _has_envelope_keys(body):
        decoded = decode_bare_plans(body)
    return decoded


@dataclass(frozen=True)
class PollAgain:
    url: str
    delay: bool


@dataclass
class PackageCallContext(CallContext):
    polls: int = 0
    poll_urls: List[str] = field(default_factory=list)


class PlannerPackagePreviewService(PlannerService):
    """Wraps the ``/package/<planner>/solve`` planning-as-a-service web service interface."""

    default_timeout_s = 20.0

    def __init__(
        self,
        planner_url: str,
        configuration=None,
        transport=None,
        *,
        sleep: Optional[Sleep] = None,
        clock: Optional[Clock] = None,
        poll_interval_s: float = 0.5,
        max_poll_duration_s: Optional[float] = None,
    ):
        super().__init__(planner_url, configuration, transport)
        self.sleep = sleep or asyncio.sleep
        self.clock = clock or time.monotonic
        self.poll_interval_s = poll_interval_s
        self.max_poll_duration_s = max_poll_duration_s

    def create_context(self) -> PackageCallContext:
        return PackageCallContext(timeout_s=self.default_timeout_s)

    def create_url(self, context: CallContext) -> str:
        return self._url_with_options()

    async def create_request_body(self, context: CallContext, request: PlanningRequest) -> Optional[Dict[str, Any]]:
        body: Dict[str, Any] = {"domain": request.domain_text, "problem": request.problem_text}
        if request.configuration is not None:
            body.update(request.configuration.args)
        return body

    async def process_server_response_body(
        self,
        context: CallContext,
        response_body: Any,
        plan_parser: PlanParser,
        callbacks: PlannerResponseHandler,
    ) -> List[Plan]:
        started = self.clock()
        url = context.request_url
        body = response_body
        while True:
            outcome = self._reconcile(url, body, plan_parser, callbacks)
            if not isinstance(outcome, PollAgain):
                return outcome
            if outcome.delay:
                await self.sleep(self.poll_interval_s)
            self._check_poll_budget(started)
            url = outcome.url
            if isinstance(context, PackageCallContext):
                context.polls += 1
                context.poll_urls.append(url)
            logger.info("Checking for results at %s ...", url)
            body = await self.transport.get_json(
                url,
                headers=context.headers,
                authenticated=context.authenticated,
                friendly_name=self.friendly_name,
            )

    def _check_poll_budget(self, started: float) -> None:
        if self.max_poll_duration_s is None:
            return
        elapsed = self.clock() - started
        if elapsed > self.max_poll_duration_s:
            raise PollTimeoutError(f"No result after polling for {elapsed:.1f} s.")

    def _reconcile(
        self,
        url: str,
        body: Any,
        plan_parser: PlanParser,
        callbacks: PlannerResponseHandler,
    ) -> Union[List[Plan], PollAgain]:
        decoded = decode_package_response(body)
        if isinstance(decoded, Unmatched):
            raise ContractViolationError(decoded.reason)
        if isinstance(decoded, BarePlans):
            return self._process_bare_plans(decoded, plan_parser, callbacks)

        status = decoded.status
        result = decoded.structured_result
        if result is not None:
            # partial output is reported even while the request is pending
            self._emit_result_output(result, callbacks)

        if status == "PENDING":
            target = urljoin(url, decoded.callback_url) if decoded.callback_url else url
            return PollAgain(target, delay=True)

        if status == "error" or decoded.error:
            if decoded.result is not None:
                if result is not None and result.get("error"):
                    callbacks.handle_output(result["error"])
                return []
            if decoded.error:
                raise PlanningFailedError(decoded.error)
            raise PlanningFailedError(
                "An error occurred while solving the planning problem: " + json.dumps(body)
            )

        if status is None:
            if decoded.callback_url is not None:
                return PollAgain(urljoin(url, decoded.callback_url), delay=False)
            if decoded.result is None:
                bare = decode_bare_plans(body)
                if isinstance(bare, Unmatched):
                    raise ContractViolationError(bare.reason)
                return self._process_bare_plans(bare, plan_parser, callbacks)
            raise ContractViolationError("Element 'result' should be a /check... url.")

        if status == "ok" and result is not None:
            output = result.get("output")
            if isinstance(output, dict):
                for plan_text in output.values():
                    append_plan_text(plan_text, plan_parser)
            elif output is not None and not isinstance(output, str):
                logger.warning("Skipping result output of type %s", type(output).__name__)
            return self._report_plans(plan_parser, callbacks)

        raise ContractViolationError(f"Planner service failed with status {status}.")

    def _emit_result_output(self, result: Dict[str, Any], callbacks: PlannerResponseHandler) -> None:
        output = result.get("output")
        if isinstance(output, str) and output:
            callbacks.handle_output(output + "\n")
        if result.get("stdout"):
            callbacks.handle_output(result["stdout"] + "\n")
        if result.get("stderr"):
            callbacks.handle_output("Error: " + result["stderr"] + "\n")

    def _process_bare_plans(
        self, decoded: BarePlans, plan_parser: PlanParser, callbacks: PlannerResponseHandler
    ) -> List[Plan]:
        if decoded.stdout:
            callbacks.handle_output(decoded.stdout + "\n")
        if decoded.stderr:
            callbacks.handle_output("Error: " + decoded.stderr + "\n")
        for plan_text in decoded.plans.values():
            append_plan_text(plan_text, plan_parser)
        return self._report_plans(plan_parser, callbacks)

    def _report_plans(self, plan_parser: PlanParser, callbacks: PlannerResponseHandler) -> List[Plan]:
        plans = plan_parser.get_plans()
        if plans:
            callbacks.handle_plan(plans[0])
        else:
            callbacks.handle_output(NO_PLAN_IN_OUTPUT)
        return plans
