import asyncio
import re
import xml.etree.ElementTree as ET
from typing import List, Optional

from .errors import ContractViolationError
from .models import ParserOptions, Plan, PlanStep
from .normalize import strip_action_name


_STEP_LINE_RE = re.compile(
    r"^\s*(?:(?P<time>\d+(?:\.\d+)?(?:[eE][-+]?\d+)?)\s*:)?\s*"
    r"(?P<action>\([^)]*\))\s*"
    r"(?:\[\s*(?P<duration>\d+(?:\.\d+)?(?:[eE][-+]?\d+)?)\s*\])?"
)


def _xml_text(node: Optional[ET.Element]) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.strip()


def _parse_xplan(text: str) -> List[dict]:
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise ContractViolationError(f"Invalid xplan content: {exc}") from exc
    steps = []
    for step in root.iter("Step"):
        action = step.find("Action")
        name = _xml_text(action.find("Name")) if action is not None else ""
        params = []
        if action is not None:
            for param in action.iter("Parameter"):
                value = _xml_text(param.find("Name")) or _xml_text(param)
                if value:
                    params.append(value)
        steps.append(
            {
                "name": " ".join([name, *params]).strip(),
                "time": _xml_text(step.find("StartTime")) or None,
                "duration": _xml_text(step.find("Duration")) or None,
            }
        )
    return steps


class PlanOutputParser:
    """Collects plan steps from planner output and closes them into plans."""

    def __init__(self, options: Optional[ParserOptions] = None):
        self.options = options or ParserOptions()
        self._plans: List[Plan] = []
        self._steps: List[PlanStep] = []
        self._reset_metadata()

    def _reset_metadata(self) -> None:
        self._makespan: Optional[float] = None
        self._metric: Optional[float] = None
        self._states_evaluated: Optional[int] = None
        self._elapsed_time_s: Optional[float] = None
        self._time_scale = 1.0

    def set_plan_metadata(
        self,
        makespan: Optional[float],
        metric: Optional[float],
        states_evaluated: Optional[int],
        elapsed_time_s: Optional[float],
        time_scale: float,
    ) -> None:
        self._makespan = makespan
        self._metric = metric
        self._states_evaluated = states_evaluated
        self._elapsed_time_s = elapsed_time_s
        self._time_scale = time_scale

    def append_step(self, step: PlanStep) -> None:
        self._steps.append(step)

    def _append_parsed(self, action: str, time: Optional[str], duration: Optional[str]) -> None:
        index = len(self._steps)
        epsilon = self.options.epsilon
        is_durative = duration is not None
        try:
            start = float(time) * self._time_scale if time else (index + 1) * epsilon
            length = float(duration) * self._time_scale if duration is not None else epsilon
            step = PlanStep(start, strip_action_name(action), is_durative, length, index)
        except ValueError as exc:
            raise ContractViolationError(f"Invalid plan step {action}: {exc}") from exc
        self._steps.append(step)

    def append_line(self, text: str) -> None:
        for line in text.splitlines():
            stripped = line.strip()
            if not stripped or stripped.startswith(";"):
                continue
            match = _STEP_LINE_RE.match(stripped)
            if not match:
                continue
            self._append_parsed(match.group("action"), match.group("time"), match.group("duration"))

    async def append_xplan(self, text: str) -> None:
        steps = await asyncio.to_thread(_parse_xplan, text)
        for step in steps:
            if step["name"]:
                self._append_parsed(step["name"], step["time"], step["duration"])

    def on_plan_finished(self) -> None:
        if self._steps:
            self._plans.append(
                Plan(
                    steps=tuple(self._steps),
                    makespan=self._makespan * self._time_scale if self._makespan is not None else None,
                    metric=self._metric,
                    states_evaluated=self._states_evaluated,
                    elapsed_time_s=self._elapsed_time_s,
                    time_scale=self._time_scale,
                )
            )
        self._steps = []
        self._reset_metadata()

    def get_plans(self) -> List[Plan]:
        return list(self._plans)
