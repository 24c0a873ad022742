import logging
from typing import Any, Dict, List, Optional

from .errors import ContractViolationError
from .models import Plan, PlannerResponseHandler, PlanningRequest, PlanParser
from .normalize import parse_plan_steps
from .service import NO_PLAN_FOUND, CallContext, PlannerService


logger = logging.getLogger(__name__)


class PlannerSyncService(PlannerService):
    """Wraps the ``/solve`` planning web service interface."""

    default_timeout_s = 60.0

    def create_url(self, context: CallContext) -> str:
        return self._url_with_options()

    async def create_request_body(self, context: CallContext, request: PlanningRequest) -> Optional[Dict[str, Any]]:
        return {"domain": request.domain_text, "problem": request.problem_text}

    async def process_server_response_body(
        self,
        context: CallContext,
        response_body: Any,
        plan_parser: PlanParser,
        callbacks: PlannerResponseHandler,
    ) -> List[Plan]:
        status = response_body.get("status") if isinstance(response_body, dict) else None
        result = response_body.get("result") if isinstance(response_body, dict) else None

        if status == "error":
            result = result if isinstance(result, dict) else {}
            if result.get("output"):
                callbacks.handle_output(result["output"])
            if result.get("error"):
                callbacks.handle_output(result["error"])
            logger.info("Planning service reported an error at %s", context.request_url)
            return []

        if status != "ok" or not isinstance(result, dict):
            raise ContractViolationError(f"Planner service failed with status {status}.")

        if result.get("output"):
            callbacks.handle_output(result["output"])

        if result.get("plan") is not None:
            parse_plan_steps(result["plan"], plan_parser, context.time_scale)
            plan_parser.on_plan_finished()

        plans = plan_parser.get_plans()
        if plans:
            callbacks.handle_plan(plans[0])
        else:
            callbacks.handle_output(NO_PLAN_FOUND)
        return plans
