"""Approval pipeline aggregation -- progress, overall status, bottlenecks.

Folds a deal's approval requirement records into per-stage progress and an
overall status. Stages keep first-seen order. A pending requirement is a
bottleneck once its whole-day age exceeds the configured threshold.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import datetime, timezone

import structlog

from src.dealdesk.approvals.departments import display_name
from src.dealdesk.approvals.schemas import (
    ApprovalRequirementRead,
    ApprovalStatus,
    PipelineStatus,
    StageProgress,
)

logger = structlog.get_logger(__name__)

DEFAULT_BOTTLENECK_THRESHOLD_DAYS = 1


def percent(part: int, total: int) -> int:
    """Whole percentage with halves rounded up (1 of 8 is 13)."""
    return math.floor(part / total * 100 + 0.5)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def days_pending(requirement: ApprovalRequirementRead, now: datetime) -> int:
    """Whole days since the requirement was created."""
    elapsed = _as_utc(now) - _as_utc(requirement.created_at)
    return elapsed.days


def _stage_status(requirements: Sequence[ApprovalRequirementRead]) -> ApprovalStatus:
    if any(r.status == ApprovalStatus.REVISION_REQUESTED for r in requirements):
        return ApprovalStatus.REVISION_REQUESTED
    if all(r.status == ApprovalStatus.APPROVED for r in requirements):
        return ApprovalStatus.APPROVED
    return ApprovalStatus.PENDING


def find_bottlenecks(
    requirements: Sequence[ApprovalRequirementRead],
    now: datetime | None = None,
    threshold_days: int = DEFAULT_BOTTLENECK_THRESHOLD_DAYS,
) -> list[ApprovalRequirementRead]:
    now = now or datetime.now(timezone.utc)
    return [
        r
        for r in requirements
        if r.status == ApprovalStatus.PENDING and days_pending(r, now) > threshold_days
    ]


def aggregate_pipeline_status(
    requirements: Sequence[ApprovalRequirementRead],
    now: datetime | None = None,
    bottleneck_threshold_days: int = DEFAULT_BOTTLENECK_THRESHOLD_DAYS,
) -> PipelineStatus:
    """Fold approval requirements into a PipelineStatus.

    Args:
        requirements: A deal's approval requirement records.
        now: Reference time for bottleneck ages (defaults to current UTC time).
        bottleneck_threshold_days: Pending requirements older than this many
            whole days are reported as bottlenecks.

    Returns:
        PipelineStatus. Empty input yields a pending status with no stages.
    """
    if not requirements:
        return PipelineStatus()

    now = now or datetime.now(timezone.utc)

    groups: dict[str, list[ApprovalRequirementRead]] = {}
    for requirement in requirements:
        groups.setdefault(requirement.stage, []).append(requirement)

    stages: list[StageProgress] = []
    for stage, reqs in groups.items():
        completed = sum(1 for r in reqs if r.status == ApprovalStatus.APPROVED)
        total = len(reqs)
        stages.append(
            StageProgress(
                stage=stage,
                status=_stage_status(reqs),
                progress=percent(completed, total),
                completed_count=completed,
                total_count=total,
            )
        )

    overall = _stage_status(requirements)
    approved_total = sum(1 for r in requirements if r.status == ApprovalStatus.APPROVED)
    current_stage = next(
        (s.stage for s in stages if s.status != ApprovalStatus.APPROVED), None
    )

    by_id = {r.id: r for r in requirements}
    next_actions = [
        f"Waiting for {display_name(r.department)} approval"
        for r in requirements
        if r.status == ApprovalStatus.PENDING
        and all(
            dep in by_id and by_id[dep].status == ApprovalStatus.APPROVED
            for dep in r.dependencies
        )
    ]

    bottlenecks = find_bottlenecks(requirements, now, bottleneck_threshold_days)
    if bottlenecks:
        logger.info(
            "pipeline.bottlenecks_detected",
            deal_id=requirements[0].deal_id,
            count=len(bottlenecks),
        )

    return PipelineStatus(
        deal_id=requirements[0].deal_id,
        overall_status=overall,
        percent_complete=percent(approved_total, len(requirements)),
        current_stage=current_stage,
        stages=stages,
        next_actions=next_actions,
        bottlenecks=bottlenecks,
    )


def follow_up_recommendations(
    status: PipelineStatus, now: datetime | None = None
) -> list[str]:
    """Suggested follow-ups for the seller who owns the deal."""
    now = now or datetime.now(timezone.utc)
    recommendations = [
        f"Contact {display_name(r.department)} about pending approval "
        f"({days_pending(r, now)} days)"
        for r in status.bottlenecks
    ]
    if status.overall_status == ApprovalStatus.REVISION_REQUESTED:
        recommendations.append("Address revision requests and resubmit")
    return recommendations
