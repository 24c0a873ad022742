import asyncio
from typing import Any, Dict, List, Optional, Tuple

from pddl_service_client.errors import TransportError
from pddl_service_client.models import ParserOptions, Plan, PlanStep


class RecordingHandler:
    def __init__(self) -> None:
        self.outputs: List[str] = []
        self.plans: List[Plan] = []
        self.options: List[Dict[str, Any]] = []

    def handle_output(self, text: str) -> None:
        self.outputs.append(text)

    def handle_plan(self, plan: Plan) -> None:
        self.plans.append(plan)

    def provide_planner_options(self, metadata: Dict[str, Any]) -> None:
        self.options.append(metadata)


class FakePlanParser:
    """Builds one plan per on_plan_finished call and records everything it was fed."""

    def __init__(self, epsilon: float = 1e-3, xplan_delay: float = 0.0) -> None:
        self.options = ParserOptions(epsilon=epsilon)
        self.xplan_delay = xplan_delay
        self.steps: List[PlanStep] = []
        self.lines: List[str] = []
        self.xplans: List[str] = []
        self.metadata: List[Tuple[Any, ...]] = []
        self.finished = 0
        self.events: List[str] = []
        self._plans: List[Plan] = []
        self._pending: List[PlanStep] = []

    def append_step(self, step: PlanStep) -> None:
        self.steps.append(step)
        self._pending.append(step)

    def append_line(self, text: str) -> None:
        self.lines.append(text)
        for raw in text.splitlines():
            name = raw.strip().strip("()")
            if name:
                index = len(self._pending)
                self._pending.append(PlanStep(index + 1.0, name, False, 0.0, index))

    async def append_xplan(self, text: str) -> None:
        self.events.append("xplan-start")
        if self.xplan_delay:
            await asyncio.sleep(self.xplan_delay)
        self.xplans.append(text)
        self._pending.append(PlanStep(0.0, "xplan-step", False, 0.0, len(self._pending)))
        self.events.append("xplan-done")

    def on_plan_finished(self) -> None:
        self.events.append("finished")
        self.finished += 1
        if self._pending:
            self._plans.append(Plan(steps=tuple(self._pending)))
        self._pending = []

    def get_plans(self) -> List[Plan]:
        return list(self._plans)

    def set_plan_metadata(self, makespan, metric, states_evaluated, elapsed_time_s, time_scale) -> None:
        self.metadata.append((makespan, metric, states_evaluated, elapsed_time_s, time_scale))


class FakeTransport:
    """Replays queued JSON bodies (or exceptions) for POST and GET calls."""

    def __init__(self, post_response: Any = None, get_responses: Optional[List[Any]] = None) -> None:
        self.post_response = post_response
        self.get_responses = list(get_responses or [])
        self.posts: List[Dict[str, Any]] = []
        self.gets: List[Dict[str, Any]] = []
        self.closed = False

    async def post_json(self, url, body, **kwargs):
        self.posts.append({"url": url, "body": body, **kwargs})
        if isinstance(self.post_response, Exception):
            raise self.post_response
        return self.post_response

    async def get_json(self, url, **kwargs):
        self.gets.append({"url": url, **kwargs})
        if not self.get_responses:
            raise TransportError(f"unexpected poll of {url}", url=url)
        response = self.get_responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self) -> None:
        self.closed = True


class FakeSleep:
    def __init__(self, clock: Optional["FakeClock"] = None) -> None:
        self.calls: List[float] = []
        self.clock = clock

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.now += seconds


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def async_plan_entry(steps_json: str, fmt: str = "JSON", makespan: float = 2.0, metric: float = 2.0) -> Dict[str, Any]:
    return {
        "makespan": makespan,
        "metricValue": metric,
        "searchPerformanceInfo": {"statesEvaluated": 10, "timeElapsed": "1500"},
        "format": fmt,
        "content": steps_json,
    }
