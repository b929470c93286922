"""Observability endpoints exposing reward outcome counters."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from placeclub_api.api.dependencies.security import require_operator_api_key
from placeclub_api.observability.rewards import get_reward_store


router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get(
    "/rewards",
    dependencies=[Depends(require_operator_api_key)],
    summary="Reward outcome snapshot",
)
async def get_reward_snapshot() -> dict[str, object]:
    """Accepted and rejected counts per reward operation (requires operator API key)."""
    return get_reward_store().snapshot().as_dict()


def _format_metric(name: str, description: str, value: int | float, labels: dict[str, str] | None = None) -> list[str]:
    label_fragment = ""
    if labels:
        formatted = ",".join(f'{key}="{val}"' for key, val in sorted(labels.items()))
        label_fragment = f"{{{formatted}}}"
    return [
        f"# HELP {name} {description}",
        f"# TYPE {name} gauge",
        f"{name}{label_fragment} {value}",
    ]


@router.get(
    "/prometheus",
    dependencies=[Depends(require_operator_api_key)],
    summary="Prometheus-formatted reward metrics",
    response_class=PlainTextResponse,
)
async def get_prometheus_metrics() -> PlainTextResponse:
    snapshot = get_reward_store().snapshot().as_dict()

    lines: list[str] = []
    for operation, outcomes in sorted(snapshot.items()):
        for outcome, count in sorted(outcomes.items()):
            lines.extend(
                _format_metric(
                    "placeclub_reward_outcomes_total",
                    "Reward operation outcomes",
                    count,
                    {"operation": operation, "outcome": outcome},
                )
            )

    return PlainTextResponse("\n".join(lines) + "\n")
