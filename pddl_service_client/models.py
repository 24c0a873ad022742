from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple


@dataclass(frozen=True)
class DomainInfo:
    name: str
    text: str


@dataclass(frozen=True)
class ProblemInfo:
    name: str
    text: str


@dataclass(frozen=True)
class PlanStep:
    time: float
    action_name: str
    is_durative: bool
    duration: float
    order_index: int

    def __post_init__(self) -> None:
        if self.time < 0:
            raise ValueError(f"plan step time must not be negative: {self.time}")
        if self.duration < 0:
            raise ValueError(f"plan step duration must not be negative: {self.duration}")

    @property
    def end_time(self) -> float:
        return self.time + self.duration

    def to_line(self) -> str:
        line = f"{self.time:g}: ({self.action_name})"
        if self.is_durative:
            line += f" [{self.duration:g}]"
        return line


@dataclass(frozen=True)
class Plan:
    steps: Tuple[PlanStep, ...]
    makespan: Optional[float] = None
    metric: Optional[float] = None
    states_evaluated: Optional[int] = None
    elapsed_time_s: Optional[float] = None
    time_scale: float = 1.0

    def __post_init__(self) -> None:
        indexes = [step.order_index for step in self.steps]
        if any(later <= earlier for earlier, later in zip(indexes, indexes[1:])):
            raise ValueError(f"plan step order indexes must be strictly increasing: {indexes}")

    def __len__(self) -> int:
        return len(self.steps)

    @property
    def text(self) -> str:
        return "\n".join(step.to_line() for step in self.steps)

    def computed_makespan(self) -> float:
        if self.makespan is not None:
            return self.makespan
        return max((step.end_time for step in self.steps), default=0.0)


@dataclass(frozen=True)
class PlanningRequest:
    domain_name: str
    domain_text: str
    problem_name: str
    problem_text: str
    configuration: Any = None

    @classmethod
    def build(cls, domain: DomainInfo, problem: ProblemInfo, configuration: Any) -> "PlanningRequest":
        return cls(
            domain_name=domain.name,
            domain_text=domain.text,
            problem_name=problem.name,
            problem_text=problem.text,
            configuration=configuration,
        )


@dataclass
class ParserOptions:
    epsilon: float = 1e-3
    extra: Dict[str, Any] = field(default_factory=dict)


class PlannerResponseHandler(Protocol):
    def handle_output(self, text: str) -> None:
        ...

    def handle_plan(self, plan: Plan) -> None:
        ...

    def provide_planner_options(self, metadata: Dict[str, Any]) -> None:
        ...


class PlanParser(Protocol):
    options: ParserOptions

    def append_step(self, step: PlanStep) -> None:
        ...

    def append_line(self, text: str) -> None:
        ...

    async def append_xplan(self, text: str) -> None:
        ...

    def on_plan_finished(self) -> None:
        ...

    def get_plans(self) -> List[Plan]:
        ...

    def set_plan_metadata(
        self,
        makespan: Optional[float],
        metric: Optional[float],
        states_evaluated: Optional[int],
        elapsed_time_s: Optional[float],
        time_scale: float,
    ) -> None:
        ...
