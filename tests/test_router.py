"""
Routing pipeline tests: review gate, audit log, delivery.
"""

import asyncio

import pytest

from agentric_core.agents.base import AgentStatus
from agentric_core.audit import AuditLog
from agentric_core.config import OrchestratorConfig
from agentric_core.envelope import MessageEnvelope, RoutingOutcome, message_priority
from agentric_core.exceptions import AuditPersistenceFailure

from conftest import FailingBlackBox, RecordingAgent, StaticGuardian


class TestDelivery:
    """Approved envelopes reach their target."""

    @pytest.mark.asyncio
    async def test_approved_delivered(self, pipeline):
        math = RecordingAgent()
        registry, router, audit_log, state = pipeline(agents={"math": math, "science": RecordingAgent()})

        result = await router.route_message("science", "math", {"question": "2+2"})

        assert result.success is True
        assert result.outcome == RoutingOutcome.DELIVERED
        assert result.response == {"success": True, "handledBy": "math"}
        assert len(math.messages) == 1
        delivered = math.messages[0]
        assert delivered["id"] == result.envelope_id
        assert delivered["from"] == "science"
        assert delivered["content"] == {"question": "2+2"}
        assert delivered["metadata"]["ethicalReview"] is True
        assert state.total_interactions == 1
        assert router.average_response_time_ms > 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("approved", [True, False])
    async def test_delivered_iff_approved(self, pipeline, approved):
        math = RecordingAgent()
        guardian = StaticGuardian({"success": True, "approved": approved, "reason": "policy"})
        registry, router, audit_log, state = pipeline(guardian=guardian, agents={"math": math})

        result = await router.route_message("student:1", "math", "hello")

        assert result.success is approved
        assert (len(math.messages) == 1) is approved
        assert len(guardian.reviews) == 1

    @pytest.mark.asyncio
    async def test_rejection_reason(self, pipeline):
        guardian = StaticGuardian({"success": True, "approved": False, "reason": "unsafe"})
        registry, router, audit_log, state = pipeline(guardian=guardian, agents={"math": RecordingAgent()})

        result = await router.route_message("student:1", "math", "hello")

        assert result.rejected
        assert "unsafe" in result.reason
        assert result.error["error_code"] == "AGENTRIC-ETH-0001"
        assert state.total_interactions == 0

    @pytest.mark.asyncio
    async def test_guardian_sender_skips_review(self, pipeline):
        guardian = StaticGuardian({"success": True, "approved": False})
        counseling = RecordingAgent()
        registry, router, audit_log, state = pipeline(guardian=guardian, agents={"counseling": counseling})

        result = await router.route_message("guardian", "counseling", "check on student 7")

        assert result.success is True
        assert guardian.reviews == []
        assert counseling.messages[0]["metadata"]["ethicalReview"] is True
        assert counseling.messages[0]["priority"] == 1


class TestFailClosed:
    """Any Guardian malfunction blocks delivery."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("guardian", [
        StaticGuardian(error=RuntimeError("guardian crashed")),
        StaticGuardian(delay=2.0),
        StaticGuardian(verdict={"success": True}),
        StaticGuardian(verdict={"success": True, "approved": "yes"}),
        StaticGuardian(verdict="approved"),
    ], ids=["raises", "timeout", "missing-verdict", "truthy-non-bool", "not-a-dict"])
    async def test_guardian_malfunction_rejects(self, pipeline, guardian, test_config):
        math = RecordingAgent()
        config = OrchestratorConfig(agent_timeout=0.05, health_check_interval=0)
        registry, router, audit_log, state = pipeline(guardian=guardian, agents={"math": math}, config=config)

        result = await router.route_message("student:1", "math", "hello")

        assert result.success is False
        assert result.outcome == RoutingOutcome.REJECTED
        assert math.messages == []
        assert audit_log.get_record(result.envelope_id).outcome == "rejected"

    @pytest.mark.asyncio
    async def test_guardian_missing_rejects(self, pipeline):
        math = RecordingAgent()
        registry, router, audit_log, state = pipeline(agents={"math": math}, with_guardian=False)

        result = await router.route_message("student:1", "math", "hello")

        assert result.rejected
        assert math.messages == []

    @pytest.mark.asyncio
    async def test_guardian_inactive_rejects(self, pipeline):
        math = RecordingAgent()
        registry, router, audit_log, state = pipeline(agents={"math": math})
        registry.get_agent("guardian").update_status(AgentStatus.ERROR)

        result = await router.route_message("student:1", "math", "hello")

        assert result.rejected
        assert math.messages == []


class TestAudit:
    """Exactly one audit record per routing attempt."""

    @pytest.mark.asyncio
    async def test_one_record_per_attempt(self, pipeline):
        guardian = StaticGuardian()
        registry, router, audit_log, state = pipeline(guardian=guardian, agents={
            "math": RecordingAgent(),
            "broken": RecordingAgent(error=RuntimeError("down")),
        })

        results = [
            await router.route_message("student:1", "math", "ok"),
            await router.route_message("student:1", "nobody", "lost"),
            await router.route_message("student:1", "broken", "fails"),
        ]
        guardian.verdict = {"success": True, "approved": False}
        results.append(await router.route_message("student:1", "math", "blocked"))

        assert len(audit_log) == 4
        assert [r.envelope_id for r in audit_log.records()] == [r.envelope_id for r in results]
        assert len({r.envelope_id for r in results}) == 4
        assert [r.outcome for r in audit_log.records()] == ["approved", "approved", "approved", "rejected"]

    @pytest.mark.asyncio
    async def test_black_box_chain_grows(self, pipeline):
        registry, router, audit_log, state = pipeline(agents={"math": RecordingAgent()})
        await router.route_message("student:1", "math", "one")
        await router.route_message("student:1", "math", "two")

        black_box = registry.get_agent("blackBox").implementation
        assert len(black_box.entries) == 2
        assert black_box.verify() is True
        assert audit_log.records()[1].entry_hash == black_box.entries[1]["hash"]

    @pytest.mark.asyncio
    async def test_unconfirmed_write_is_fatal(self, pipeline):
        math = RecordingAgent()
        registry, router, audit_log, state = pipeline(black_box=FailingBlackBox(), agents={"math": math})

        with pytest.raises(AuditPersistenceFailure):
            await router.route_message("student:1", "math", "hello")
        assert math.messages == []
        assert len(audit_log) == 0

    @pytest.mark.asyncio
    async def test_black_box_exception_is_fatal(self, pipeline):
        registry, router, audit_log, state = pipeline(
            black_box=FailingBlackBox(OSError("disk full")), agents={"math": RecordingAgent()},
        )
        with pytest.raises(AuditPersistenceFailure) as exc_info:
            await router.route_message("student:1", "math", "hello")
        assert "disk full" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_rejected_attempts_are_audited_too(self, pipeline):
        guardian = StaticGuardian({"success": True, "approved": False, "reason": "off topic"})
        math = RecordingAgent()
        registry, router, audit_log, state = pipeline(guardian=guardian, agents={"math": math})

        result = await router.route_message("student:1", "math", "hello")

        assert result.rejected
        assert math.messages == []
        record = audit_log.get_record(result.envelope_id)
        assert record.outcome == "rejected"
        assert record.reason == "off topic"
        black_box = registry.get_agent("blackBox").implementation
        assert black_box.entries[-1]["data"]["outcome"]["status"] == "rejected"
        assert black_box.entries[-1]["hash"] == record.entry_hash

    @pytest.mark.asyncio
    async def test_rejected_attempt_with_failing_black_box_is_fatal(self, pipeline):
        guardian = StaticGuardian({"success": True, "approved": False})
        registry, router, audit_log, state = pipeline(guardian=guardian, black_box=FailingBlackBox(),
                                                      agents={"math": RecordingAgent()})
        with pytest.raises(AuditPersistenceFailure):
            await router.route_message("student:1", "math", "hello")

    @pytest.mark.asyncio
    async def test_index_keeps_recent_window(self, pipeline):
        registry, router, audit_log, state = pipeline(agents={"math": RecordingAgent()})
        window = AuditLog(registry, max_records=2)
        envelopes = [MessageEnvelope("student:1", "math", f"msg {i}", priority=5) for i in range(3)]

        for envelope in envelopes:
            await window.record(envelope, "approved")

        assert len(window) == 2
        assert window.total_recorded == 3
        assert window.get_record(envelopes[0].envelope_id) is None
        assert [r.envelope_id for r in window.records()] == [e.envelope_id for e in envelopes[1:]]


class TestStructuredFailures:
    """Routing failures come back as results."""

    @pytest.mark.asyncio
    async def test_unknown_target(self, pipeline):
        registry, router, audit_log, state = pipeline()

        result = await router.route_message("student:1", "nobody", "hi")

        assert result.success is False
        assert result.outcome == RoutingOutcome.FAILED
        assert result.error["error_code"] == "AGENTRIC-RTE-0001"
        assert audit_log.get_record(result.envelope_id) is not None

    @pytest.mark.asyncio
    async def test_inactive_target(self, pipeline):
        math = RecordingAgent()
        registry, router, audit_log, state = pipeline(agents={"math": math})
        registry.get_agent("math").update_status(AgentStatus.SHUTTING_DOWN)

        result = await router.route_message("student:1", "math", "hi")

        assert result.outcome == RoutingOutcome.FAILED
        assert "not active" in result.reason
        assert math.messages == []

    @pytest.mark.asyncio
    async def test_target_raises(self, pipeline):
        registry, router, audit_log, state = pipeline(agents={"math": RecordingAgent(error=RuntimeError("boom"))})

        result = await router.route_message("student:1", "math", "hi")

        assert result.outcome == RoutingOutcome.FAILED
        assert "boom" in result.reason
        assert state.total_interactions == 0

    @pytest.mark.asyncio
    async def test_target_timeout(self, pipeline):
        config = OrchestratorConfig(agent_timeout=0.05, health_check_interval=0)
        registry, router, audit_log, state = pipeline(agents={"math": RecordingAgent(delay=1.0)}, config=config)

        result = await router.route_message("student:1", "math", "hi")

        assert result.outcome == RoutingOutcome.FAILED
        assert result.error["error_code"] == "AGENTRIC-RTE-0002"

    @pytest.mark.asyncio
    async def test_result_to_dict(self, pipeline):
        registry, router, audit_log, state = pipeline()
        d = (await router.route_message("student:1", "nobody", "hi")).to_dict()
        assert d["success"] is False
        assert d["outcome"] == "failed"
        assert "envelopeId" in d


class TestPriority:
    """Envelope priority derivation."""

    def test_guardian_involved(self, pipeline):
        registry, *_ = pipeline(agents={"math": RecordingAgent()})
        assert message_priority(registry, "guardian", "math") == 1
        assert message_priority(registry, "math", "guardian") == 1

    def test_counseling_involved(self, pipeline):
        registry, *_ = pipeline(agents={"math": RecordingAgent(), "counseling": RecordingAgent()})
        assert message_priority(registry, "math", "counseling") == 2

    def test_minimum_of_endpoints(self, channel, pipeline):
        registry, *_ = pipeline(agents={"math": RecordingAgent(), "arts": RecordingAgent()})
        assert message_priority(registry, "math", "arts") == 3
        assert message_priority(registry, "blackBox", "math") == 0

    def test_unregistered_endpoint_default(self, pipeline):
        registry, *_ = pipeline(agents={"math": RecordingAgent()})
        assert message_priority(registry, "student:1", "math") == 5
        assert message_priority(registry, "student:1", "math", default=9) == 9


class TestAdmission:
    """Optional bound on concurrent routings."""

    @pytest.mark.asyncio
    async def test_bounded_concurrency(self, pipeline):
        math = RecordingAgent(delay=0.02)
        config = OrchestratorConfig(agent_timeout=1.0, max_inflight_routings=1, health_check_interval=0)
        registry, router, audit_log, state = pipeline(agents={"math": math}, config=config)

        results = await asyncio.gather(*(router.route_message("student:1", "math", i) for i in range(4)))

        assert all(r.success for r in results)
        assert math.max_inflight == 1

    @pytest.mark.asyncio
    async def test_unbounded_by_default(self, pipeline):
        math = RecordingAgent(delay=0.02)
        registry, router, audit_log, state = pipeline(agents={"math": math})

        await asyncio.gather(*(router.route_message("student:1", "math", i) for i in range(4)))

        assert math.max_inflight > 1
