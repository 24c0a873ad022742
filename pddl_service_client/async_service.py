import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .config import AsyncServiceConfiguration
from .errors import ContractViolationError, PlanningFailedError
from .models import Plan, PlannerResponseHandler, PlanningRequest, PlanParser
from .normalize import TIME_UNIT_SCALES, feed_plan_entry, plan_entries, plan_time_scale
from .service import NO_PLAN_FOUND, CallContext, PlannerService


logger = logging.getLogger(__name__)

PLAN_FOUND_STATES = {"STOPPED", "SEARCHING_BETTER_PLAN"}
INITIALIZING_STATES = {"NOT_INITIALIZED", "INITIATING", "SEARCHING_INITIAL_PLAN"}
DEFAULT_PLAN_TIME_SCALE = TIME_UNIT_SCALES["HOUR"]


@dataclass
class AsyncCallContext(CallContext):
    # index of the last plan reported through handle_plan
    last_plan_printed: int = -1
    timed_out: bool = False
    parser_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class PlannerAsyncService(PlannerService):
    """Wraps the ``/request`` planning web service interface of anytime planners."""

    DEFAULT_TIMEOUT = 60.0
    default_timeout_s = DEFAULT_TIMEOUT

    def __init__(self, planner_url: str, configuration: Optional[AsyncServiceConfiguration] = None, transport=None):
        super().__init__(planner_url, configuration, transport)
        self.async_mode = False

    def create_context(self) -> AsyncCallContext:
        return AsyncCallContext(timeout_s=self.DEFAULT_TIMEOUT, time_scale=DEFAULT_PLAN_TIME_SCALE)

    def create_url(self, context: CallContext) -> str:
        return f"{self.planner_url}?async={str(self.async_mode).lower()}"

    async def create_request_body(self, context: CallContext, request: PlanningRequest) -> Optional[Dict[str, Any]]:
        configuration = request.configuration
        if configuration is None:
            return None
        if not isinstance(configuration, AsyncServiceConfiguration):
            configuration = AsyncServiceConfiguration(**configuration.model_dump())
        if not configuration.plan_format:
            configuration = configuration.model_copy(update={"plan_format": "JSON"})
        if configuration.timeout is not None:
            context.timeout_s = configuration.timeout
        context.time_scale = plan_time_scale(configuration.plan_time_unit, DEFAULT_PLAN_TIME_SCALE)

        return {
            "domain": {"name": request.domain_name, "format": "PDDL", "content": request.domain_text},
            "problem": {"name": request.problem_name, "format": "PDDL", "content": request.problem_text},
            "configuration": configuration.to_service_payload(),
        }

    @staticmethod
    def create_default_configuration(timeout: float) -> AsyncServiceConfiguration:
        return AsyncServiceConfiguration(planFormat="JSON", timeout=timeout)

    async def _normalize_entries(self, context: AsyncCallContext, entries: List[Any], plan_parser: PlanParser) -> None:
        async def feed(entry: Any) -> None:
            # the parser accumulates steps, so entries are fed one at a time in list order
            async with context.parser_lock:
                await feed_plan_entry(entry, plan_parser, context.time_scale)

        results = await asyncio.gather(*(feed(entry) for entry in entries), return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result

    def _emit_new_plans(self, context: AsyncCallContext, plans: List[Plan], callbacks: PlannerResponseHandler) -> None:
        for index, plan in enumerate(plans):
            if index > context.last_plan_printed:
                callbacks.handle_plan(plan)
                context.last_plan_printed = index

    async def process_server_response_body(
        self,
        context: CallContext,
        response_body: Any,
        plan_parser: PlanParser,
        callbacks: PlannerResponseHandler,
    ) -> List[Plan]:
        if not isinstance(context, AsyncCallContext):
            raise TypeError("PlannerAsyncService requires an AsyncCallContext")
        if not isinstance(response_body, dict) or not isinstance(response_body.get("status"), dict):
            raise ContractViolationError(f"Missing 'status' element in {json.dumps(response_body)}")

        output = response_body.get("output")
        if output:
            callbacks.handle_output(output)

        status_info = response_body["status"]
        status = status_info.get("status")

        if status in PLAN_FOUND_STATES:
            if status_info.get("reason") == "TIMEOUT":
                context.timed_out = True
                logger.info("Planner search at %s stopped on timeout.", context.request_url)
            entries = plan_entries(response_body)
            plans: List[Plan] = []
            if entries:
                already_parsed = len(plan_parser.get_plans())
                await self._normalize_entries(context, entries, plan_parser)
                plans = plan_parser.get_plans()[already_parsed:]
                self._emit_new_plans(context, plans, callbacks)
            if not plans:
                callbacks.handle_output(NO_PLAN_FOUND)
            return plans

        if status == "FAILED":
            error = status_info.get("error")
            message = error.get("message") if isinstance(error, dict) else None
            raise PlanningFailedError(message or f"Planner service failed: {json.dumps(status_info)}")

        if status in INITIALIZING_STATES:
            context.timed_out = True
            raise PlanningFailedError(f"After timeout {context.timeout_s:g} the status is {status}")

        raise ContractViolationError(f"Planner service failed with status {status}.")
