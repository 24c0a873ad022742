import json
import logging
from typing import Any, Dict, List, Optional

from .errors import ContractViolationError, UnsupportedPlanFormatError
from .models import PlanParser, PlanStep


logger = logging.getLogger(__name__)


TIME_UNIT_SCALES: Dict[str, float] = {
    "SECOND": 1.0,
    "MILLISECOND": 1 / 1000,
    "MINUTE": 60.0,
    "HOUR": 60.0 * 60,
    "DAY": 24 * 60.0 * 60,
    "WEEK": 7 * 24 * 60.0 * 60,
}


def plan_time_scale(unit: Optional[str], default: float = 1.0) -> float:
    """Conversion factor from a server-declared time unit to seconds."""
    if not unit:
        return default
    return TIME_UNIT_SCALES.get(str(unit).strip().upper(), default)


def strip_action_name(name: str) -> str:
    return name.replace("(", "", 1).replace(")", "", 1).strip()


def _to_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _step_value(raw: Dict[str, Any], key: str, index: int) -> Optional[float]:
    value = raw.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise ContractViolationError(f"Plan step {index} has invalid {key}: {json.dumps(value)}")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ContractViolationError(f"Plan step {index} has invalid {key}: {json.dumps(value)}") from exc
    if number < 0:
        raise ContractViolationError(f"Plan step {index} has negative {key}: {number:g}")
    return number


def parse_plan_steps(steps: Any, parser: PlanParser, time_scale: float = 1.0) -> int:
    """Feed a JSON step array into the parser; the caller finalizes the plan."""
    if not isinstance(steps, list):
        raise ContractViolationError(f"Plan steps should be a list, got {type(steps).__name__}.")
    epsilon = parser.options.epsilon
    for index, raw in enumerate(steps):
        if not isinstance(raw, dict) or not isinstance(raw.get("name"), str):
            raise ContractViolationError(f"Plan step {index} has no action name: {json.dumps(raw)}")
        time = _step_value(raw, "time", index)
        time = (index + 1) * epsilon if time is None else time * time_scale
        duration = _step_value(raw, "duration", index)
        is_durative = duration is not None
        duration = epsilon if duration is None else duration * time_scale
        parser.append_step(PlanStep(time, strip_action_name(raw["name"]), is_durative, duration, index))
    return len(steps)


def append_plan_text(text: Any, parser: PlanParser) -> None:
    if isinstance(text, str):
        for line in text.splitlines():
            parser.append_line(line)
    else:
        logger.warning("Skipping plan text of type %s", type(text).__name__)
    parser.on_plan_finished()


def _entry_metadata(entry: Dict[str, Any]) -> Dict[str, Any]:
    perf = entry.get("searchPerformanceInfo") or {}
    elapsed_ms = _to_float(perf.get("timeElapsed"))
    states = perf.get("statesEvaluated")
    return {
        "makespan": _to_float(entry.get("makespan")),
        "metric": _to_float(entry.get("metricValue")),
        "states_evaluated": int(states) if isinstance(states, (int, float)) else None,
        "elapsed_time_s": elapsed_ms / 1000 if elapsed_ms is not None else None,
    }


async def feed_plan_entry(entry: Any, parser: PlanParser, time_scale: float) -> None:
    """Normalize one plan entry of the async service and finalize it."""
    if not isinstance(entry, dict):
        raise ContractViolationError(f"Plan entry should be an object: {json.dumps(entry)}")
    meta = _entry_metadata(entry)
    parser.set_plan_metadata(
        meta["makespan"], meta["metric"], meta["states_evaluated"], meta["elapsed_time_s"], time_scale
    )
    plan_format = entry.get("format")
    fmt = plan_format.lower() if isinstance(plan_format, str) else None
    content = entry.get("content")
    if fmt == "json":
        try:
            steps = json.loads(content) if isinstance(content, str) else content
        except ValueError as exc:
            raise ContractViolationError(f"Plan content is not valid JSON: {exc}") from exc
        parse_plan_steps(steps, parser, time_scale)
    elif fmt == "tasks":
        parser.append_line(content or "")
    elif fmt == "xplan":
        # the xml conversion must complete before the plan is closed
        await parser.append_xplan(content or "")
    else:
        raise UnsupportedPlanFormatError(plan_format)
    parser.on_plan_finished()


def plan_entries(body: Dict[str, Any]) -> List[Any]:
    plans = body.get("plans")
    if plans is None:
        return []
    if not isinstance(plans, list):
        raise ContractViolationError("Element 'plans' should be a list.")
    return plans
