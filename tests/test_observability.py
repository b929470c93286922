from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from loguru import logger
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode
from sqlalchemy.exc import OperationalError

from placeclub_api.core.logging import build_log_payload
from placeclub_api.models.merchant import Merchant
from placeclub_api.models.user import User
from placeclub_api.observability import tracing
from placeclub_api.services.rewards import Accepted, RedemptionService, Rejected, RejectionReason, RewardStoreError
from placeclub_api.services.rewards.unit_of_work import store_guard


NOW = datetime(2026, 9, 1, 12, 0, tzinfo=timezone.utc)
METADATA = {"service": "placeclub-api", "environment": "development", "version": "0.1.0"}


def _record(**extra):
    return {
        "time": NOW,
        "level": SimpleNamespace(name="INFO"),
        "message": "Reward operation rejected",
        "name": "placeclub_api.services.rewards.unit_of_work",
        "extra": extra,
        "exception": None,
    }


@pytest.fixture
def span_exporter(monkeypatch):
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    monkeypatch.setattr(tracing, "_tracer", provider.get_tracer("test"))
    return exporter


@pytest.fixture
def captured_logs():
    records = []
    sink_id = logger.add(lambda message: records.append(message.record), level="INFO")
    try:
        yield records
    finally:
        logger.remove(sink_id)


async def _seed(session_factory):
    async with session_factory() as session:
        merchant = Merchant(name="Bar del Fico", balance=500, redemption_code="FICO", is_active=True)
        member = User(email="traced@example.com")
        session.add_all([merchant, member])
        await session.commit()
        return member.id


def test_log_payload_groups_reward_context() -> None:
    payload = build_log_payload(
        _record(operation="redeem", reason="cooldown_active", user_id="u-1", path="/api/v1/rewards/redemptions"),
        METADATA,
    )

    assert payload["reward"] == {"operation": "redeem", "reason": "cooldown_active", "user_id": "u-1"}
    assert payload["path"] == "/api/v1/rewards/redemptions"
    assert payload["service"] == "placeclub-api"
    assert payload["level"] == "info"
    assert "trace_id" not in payload


def test_log_payload_carries_active_trace_ids() -> None:
    tracer = TracerProvider().get_tracer("test")

    with tracer.start_as_current_span("request") as span:
        payload = build_log_payload(_record(), METADATA)
        context = span.get_span_context()

    assert payload["trace_id"] == f"{context.trace_id:032x}"
    assert payload["span_id"] == f"{context.span_id:016x}"
    assert "reward" not in payload


@pytest.mark.asyncio
async def test_rejection_is_recorded_on_reward_span(session_factory, span_exporter) -> None:
    user_id = await _seed(session_factory)

    async with session_factory() as session:
        outcome = await RedemptionService(session).redeem(user_id, "WRONG", now=NOW)

    assert outcome == Rejected(RejectionReason.CODE_NOT_FOUND)
    (span,) = span_exporter.get_finished_spans()
    assert span.name == "rewards.redeem"
    assert span.attributes["reward.operation"] == "redeem"
    assert span.attributes["reward.outcome"] == "code_not_found"
    assert span.attributes["reward.rejection_category"] == "validation"


@pytest.mark.asyncio
async def test_accepted_redemption_logs_carry_operation(session_factory, span_exporter, captured_logs) -> None:
    user_id = await _seed(session_factory)

    async with session_factory() as session:
        outcome = await RedemptionService(session, base_points=100).redeem(user_id, "FICO", now=NOW)

    assert isinstance(outcome, Accepted)
    (span,) = span_exporter.get_finished_spans()
    assert span.attributes["reward.outcome"] == "accepted"

    redeemed = [record for record in captured_logs if record["message"] == "Redeemed merchant code"]
    assert len(redeemed) == 1
    assert redeemed[0]["extra"]["operation"] == "redeem"
    assert redeemed[0]["extra"]["user_id"] == str(user_id)


@pytest.mark.asyncio
async def test_store_failure_marks_reward_span_as_error(session_factory, span_exporter) -> None:
    async with session_factory() as session:
        with pytest.raises(RewardStoreError):
            async with store_guard(session, "claim_mission"):
                raise OperationalError("UPDATE users", {}, Exception("disk I/O error"))

    (span,) = span_exporter.get_finished_spans()
    assert span.name == "rewards.claim_mission"
    assert span.status.status_code is StatusCode.ERROR
    assert span.events[0].name == "exception"
