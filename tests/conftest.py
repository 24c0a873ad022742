import pytest

from pddl_service_client.models import DomainInfo, ProblemInfo
from tests.fakes import FakePlanParser, RecordingHandler


DOMAIN_TEXT = "(define (domain blocks) (:requirements :strips))"
PROBLEM_TEXT = "(define (problem p1) (:domain blocks))"


@pytest.fixture
def domain() -> DomainInfo:
    return DomainInfo("blocks", DOMAIN_TEXT)


@pytest.fixture
def problem() -> ProblemInfo:
    return ProblemInfo("p1", PROBLEM_TEXT)


@pytest.fixture
def handler() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def plan_parser() -> FakePlanParser:
    return FakePlanParser(epsilon=0.5)
