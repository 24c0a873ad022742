import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .config import PlannerRunConfiguration
from .http import PlanningHttpClient, wire_timeout_ms
from .models import DomainInfo, Plan, PlannerResponseHandler, PlanningRequest, PlanParser, ProblemInfo


logger = logging.getLogger(__name__)

NO_PLAN_FOUND = "No plan found."


@dataclass
class CallContext:
    """State that lives for exactly one ``plan()`` invocation."""

    timeout_s: float
    request_url: str = ""
    time_scale: float = 1.0
    headers: Dict[str, str] = field(default_factory=dict)
    authenticated: bool = False


class PlannerService(ABC):
    """Shared request lifecycle of the sync, async and packaged planning service clients."""

    friendly_name = "PDDL Planning Service"
    default_timeout_s = 60.0

    def __init__(
        self,
        planner_url: str,
        configuration: Optional[PlannerRunConfiguration] = None,
        transport: Optional[PlanningHttpClient] = None,
    ):
        self.planner_url = planner_url
        self.configuration = configuration
        self._owns_transport = transport is None
        self.transport = transport or PlanningHttpClient()

    def create_context(self) -> CallContext:
        return CallContext(timeout_s=self.default_timeout_s)

    def get_timeout(self, context: CallContext) -> float:
        """Gets timeout in seconds."""
        return context.timeout_s

    def _url_with_options(self) -> str:
        options = self.configuration.options if self.configuration else None
        if options:
            return f"{self.planner_url}?{options}"
        return self.planner_url

    def _auth_headers(self) -> Dict[str, str]:
        token = self.configuration.authentication_token if self.configuration else None
        if token:
            return {"Authorization": f"Bearer {token}"}
        return {}

    @abstractmethod
    async def create_request_body(self, context: CallContext, request: PlanningRequest) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    def create_url(self, context: CallContext) -> str:
        ...

    @abstractmethod
    async def process_server_response_body(
        self,
        context: CallContext,
        response_body: Any,
        plan_parser: PlanParser,
        callbacks: PlannerResponseHandler,
    ) -> List[Plan]:
        ...

    async def plan(
        self,
        domain: DomainInfo,
        problem: ProblemInfo,
        plan_parser: PlanParser,
        callbacks: PlannerResponseHandler,
    ) -> List[Plan]:
        callbacks.handle_output(
            f"Planning service: {self.planner_url}\nDomain: {domain.name}, Problem: {problem.name}\n"
        )
        context = self.create_context()
        context.headers = self._auth_headers()
        context.authenticated = bool(context.headers)

        # currently, this is used to notify any observers that planning is starting
        callbacks.provide_planner_options({"domain": domain, "problem": problem})

        request = PlanningRequest.build(domain, problem, self.configuration)
        body = await self.create_request_body(context, request)
        if body is None:
            logger.info("No request body for %s; nothing to send.", self.planner_url)
            return []
        url = self.create_url(context)
        context.request_url = url
        timeout_ms = wire_timeout_ms(self.get_timeout(context))
        logger.info("Planning %s/%s via %s (timeout %.0f ms)", domain.name, problem.name, url, timeout_ms)
        response_body = await self.transport.post_json(
            url,
            body,
            timeout_ms=timeout_ms,
            headers=context.headers,
            authenticated=context.authenticated,
            friendly_name=self.friendly_name,
        )
        return await self.process_server_response_body(context, response_body, plan_parser, callbacks)

    async def close(self) -> None:
        if self._owns_transport:
            await self.transport.close()
