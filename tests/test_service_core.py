import pytest
import respx
from httpx import Response

from pddl_service_client.async_service import PlannerAsyncService
from pddl_service_client.config import PlannerRunConfiguration
from pddl_service_client.errors import AuthenticationError, TransportError
from pddl_service_client.http import PlanningHttpClient
from pddl_service_client.sync_service import PlannerSyncService
from tests.fakes import FakeTransport


OK_BODY = {"status": "ok", "result": {"output": "", "plan": [{"name": "(a)"}]}}


@pytest.mark.asyncio
async def test_plan_announces_and_notifies_before_sending(domain, problem, plan_parser, handler):
    transport = FakeTransport(post_response=OK_BODY)
    service = PlannerSyncService("http://planner.test/solve", PlannerRunConfiguration(), transport)
    await service.plan(domain, problem, plan_parser, handler)
    assert handler.outputs[0] == "Planning service: http://planner.test/solve\nDomain: blocks, Problem: p1\n"
    assert handler.options == [{"domain": domain, "problem": problem}]


@pytest.mark.asyncio
async def test_bearer_token_and_wire_timeout(domain, problem, plan_parser, handler):
    transport = FakeTransport(post_response=OK_BODY)
    config = PlannerRunConfiguration(authentication_token="t0k3n")
    service = PlannerSyncService("http://planner.test/solve", config, transport)
    await service.plan(domain, problem, plan_parser, handler)
    [post] = transport.posts
    assert post["headers"] == {"Authorization": "Bearer t0k3n"}
    assert post["authenticated"] is True
    assert post["timeout_ms"] == pytest.approx(60 * 1000 * 1.1)


@pytest.mark.asyncio
async def test_no_token_means_no_auth_header(domain, problem, plan_parser, handler):
    transport = FakeTransport(post_response=OK_BODY)
    service = PlannerSyncService("http://planner.test/solve", None, transport)
    await service.plan(domain, problem, plan_parser, handler)
    assert transport.posts[0]["headers"] == {}
    assert transport.posts[0]["authenticated"] is False


@pytest.mark.asyncio
async def test_missing_request_body_skips_the_network(domain, problem, plan_parser, handler):
    transport = FakeTransport(post_response=OK_BODY)
    service = PlannerAsyncService("http://planner.test/request", None, transport)
    assert await service.plan(domain, problem, plan_parser, handler) == []
    assert transport.posts == []


@pytest.mark.asyncio
async def test_transport_errors_propagate_unmodified(domain, problem, plan_parser, handler):
    error = TransportError("connection refused")
    service = PlannerSyncService("http://planner.test/solve", None, FakeTransport(post_response=error))
    with pytest.raises(TransportError) as info:
        await service.plan(domain, problem, plan_parser, handler)
    assert info.value is error


@pytest.mark.asyncio
async def test_invalid_token_end_to_end(domain, problem, plan_parser, handler):
    transport = PlanningHttpClient()
    config = PlannerRunConfiguration(authentication_token="expired")
    service = PlannerSyncService("http://planner.test/solve", config, transport)
    try:
        with respx.mock(assert_all_called=True) as respx_mock:
            respx_mock.post("http://planner.test/solve").mock(return_value=Response(401, json={}))
            with pytest.raises(AuthenticationError, match="Invalid token"):
                await service.plan(domain, problem, plan_parser, handler)
        assert handler.plans == []
    finally:
        await transport.close()


@pytest.mark.asyncio
async def test_service_closes_only_its_own_transport():
    injected = FakeTransport()
    service = PlannerSyncService("http://planner.test/solve", None, injected)
    await service.close()
    assert injected.closed is False

    owned = PlannerSyncService("http://planner.test/solve")
    await owned.close()
    assert owned.transport.client.is_closed
