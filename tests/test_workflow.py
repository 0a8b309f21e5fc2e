"""Tests for DealWorkflow against the in-memory repository.

Tests cover:
- Creation: requirements generated on submit, initial status guard,
  tier validation, role checks, email default
- Visibility: sellers see only their own deals
- Status changes, revision requests and resubmission
- Approval decisions with dependency ordering, closed requirements
- Pipeline status, path prediction, alerts
- Comments, nudges, status counts, financial summary, assessment
- Scoping requests: triage, visibility and conversion to a deal
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from src.dealdesk.approvals.schemas import ApprovalStatus, ApproverLevel
from src.dealdesk.approvals.transitions import (
    InvalidStatusTransitionError,
    PermissionDeniedError,
    TransitionNotPermittedError,
)
from src.dealdesk.deals.assessment import HeuristicDealAssessor
from src.dealdesk.deals.financials import TierValidationError
from src.dealdesk.deals.schemas import (
    CurrentUser,
    DealStatus,
    DealStructure,
    ScopingConversion,
    ScopingRequestStatus,
    UserRole,
)
from src.dealdesk.deals.workflow import (
    ApprovalDependencyError,
    DealNotFoundError,
    RequirementClosedError,
    ScopingRequestClosedError,
    ScopingRequestNotFoundError,
    deal_parameters,
)


async def _under_review(workflow, make_deal, seller, approver):
    deal = await workflow.create_deal(make_deal(), seller)
    return await workflow.change_status(deal.id, DealStatus.UNDER_REVIEW, approver)


class TestCreateDeal:
    """Tests for DealWorkflow.create_deal."""

    async def test_submitted_deal_generates_requirements(
        self, workflow, repo, make_deal, seller
    ):
        deal = await workflow.create_deal(make_deal(), seller)

        assert deal.status == DealStatus.SUBMITTED
        assert deal.owner_id == seller.id
        assert deal.email == seller.email
        requirements = await repo.list_approval_requirements(deal.id)
        assert [r.id for r in requirements] == [
            f"{deal.id}-incentive-finance",
            f"{deal.id}-margin-trading",
            f"{deal.id}-final-executive",
        ]

    async def test_draft_deal_has_no_requirements(self, workflow, repo, make_deal, seller):
        deal = await workflow.create_deal(make_deal(status=DealStatus.DRAFT), seller)
        assert await repo.list_approval_requirements(deal.id) == []

    async def test_history_starts_with_creation(self, workflow, make_deal, seller):
        deal = await workflow.create_deal(make_deal(), seller)
        history = await workflow.get_history(deal.id, seller)
        assert len(history) == 1
        assert history[0].comments == "Deal created"
        assert history[0].previous_status is None

    async def test_initial_status_guard(self, workflow, make_deal, seller):
        with pytest.raises(InvalidStatusTransitionError):
            await workflow.create_deal(make_deal(status=DealStatus.APPROVED), seller)

    async def test_tiers_required(self, workflow, make_deal, seller):
        with pytest.raises(TierValidationError):
            await workflow.create_deal(make_deal(tiers=[]), seller)

    async def test_approver_cannot_create(self, workflow, make_deal, approver):
        with pytest.raises(PermissionDeniedError):
            await workflow.create_deal(make_deal(), approver)

    async def test_explicit_email_kept(self, workflow, make_deal, seller):
        deal = await workflow.create_deal(make_deal(email="owner@acme.com"), seller)
        assert deal.email == "owner@acme.com"


class TestVisibility:
    """Sellers only see deals they own; reviewers see everything."""

    async def test_other_seller_cannot_see_deal(self, workflow, make_deal, seller):
        deal = await workflow.create_deal(make_deal(), seller)
        other = CurrentUser(id="other", email="other@company.com", role=UserRole.SELLER)

        with pytest.raises(DealNotFoundError):
            await workflow.get_deal(deal.id, other)
        assert await workflow.list_deals(other) == []

    async def test_approver_sees_all(self, workflow, make_deal, seller, approver):
        await workflow.create_deal(make_deal(), seller)
        await workflow.create_deal(make_deal(status=DealStatus.DRAFT), seller)
        assert len(await workflow.list_deals(approver)) == 2
        drafts = await workflow.list_deals(approver, status=DealStatus.DRAFT)
        assert [d.status for d in drafts] == [DealStatus.DRAFT]

    async def test_unknown_deal(self, workflow, admin):
        with pytest.raises(DealNotFoundError, match="Deal not found: missing"):
            await workflow.get_deal("missing", admin)


class TestStatusChanges:
    """Tests for change_status, request_revision and resubmit."""

    async def test_approver_moves_to_under_review(
        self, workflow, make_deal, seller, approver
    ):
        deal = await _under_review(workflow, make_deal, seller, approver)
        assert deal.status == DealStatus.UNDER_REVIEW

        history = await workflow.get_history(deal.id, approver)
        assert history[0].status == DealStatus.UNDER_REVIEW
        assert history[0].previous_status == DealStatus.SUBMITTED
        assert history[0].changed_by == approver.email

    async def test_seller_cannot_review(self, workflow, make_deal, seller):
        deal = await workflow.create_deal(make_deal(), seller)
        with pytest.raises(TransitionNotPermittedError):
            await workflow.change_status(deal.id, DealStatus.UNDER_REVIEW, seller)

    async def test_illegal_transition(self, workflow, make_deal, seller, admin):
        deal = await workflow.create_deal(make_deal(), seller)
        with pytest.raises(InvalidStatusTransitionError):
            await workflow.change_status(deal.id, DealStatus.SIGNED, admin)

    async def test_draft_submission_generates_requirements(
        self, workflow, repo, make_deal, seller
    ):
        deal = await workflow.create_deal(make_deal(status=DealStatus.DRAFT), seller)
        await workflow.change_status(deal.id, DealStatus.SUBMITTED, seller)
        assert len(await repo.list_approval_requirements(deal.id)) == 3

    async def test_allowed_transitions(self, workflow, make_deal, seller, approver):
        deal = await _under_review(workflow, make_deal, seller, approver)
        assert await workflow.allowed_transitions(deal.id, approver) == [
            DealStatus.REVISION_REQUESTED,
            DealStatus.NEGOTIATING,
            DealStatus.APPROVED,
            DealStatus.LOST,
        ]
        assert await workflow.allowed_transitions(deal.id, seller) == []

    async def test_revision_round_trip(self, workflow, repo, make_deal, seller, approver):
        deal = await _under_review(workflow, make_deal, seller, approver)
        incentive_id = f"{deal.id}-incentive-finance"
        await workflow.decide_requirement(
            deal.id, incentive_id, ApprovalStatus.REVISION_REQUESTED, approver,
            comments="Rebate too high",
        )

        revised = await workflow.request_revision(deal.id, approver, "Rebate too high")
        assert revised.status == DealStatus.REVISION_REQUESTED
        assert revised.revision_count == 1
        assert revised.revision_reason == "Rebate too high"
        history = await workflow.get_history(deal.id, seller)
        assert history[0].comments == "Revision requested: Rebate too high"

        resubmitted = await workflow.resubmit(deal.id, seller)
        assert resubmitted.status == DealStatus.UNDER_REVIEW
        history = await workflow.get_history(deal.id, seller)
        assert history[0].comments == "Resubmitted after revision"

        requirements = await repo.list_approval_requirements(deal.id)
        assert all(r.status == ApprovalStatus.PENDING for r in requirements)

    async def test_revision_via_change_status_counts(
        self, workflow, make_deal, seller, approver
    ):
        deal = await _under_review(workflow, make_deal, seller, approver)
        revised = await workflow.change_status(
            deal.id, DealStatus.REVISION_REQUESTED, approver, comments="Fix margin"
        )
        assert revised.revision_count == 1

    async def test_revision_from_submitted_rejected(
        self, workflow, make_deal, seller, approver
    ):
        deal = await workflow.create_deal(make_deal(), seller)
        with pytest.raises(InvalidStatusTransitionError):
            await workflow.request_revision(deal.id, approver, "Too early")

    async def test_seller_cannot_request_revision(
        self, workflow, make_deal, seller, approver
    ):
        deal = await _under_review(workflow, make_deal, seller, approver)
        with pytest.raises(PermissionDeniedError):
            await workflow.request_revision(deal.id, seller, "Self review")

    async def test_resubmit_requires_revision_requested(
        self, workflow, make_deal, seller, approver
    ):
        deal = await _under_review(workflow, make_deal, seller, approver)
        with pytest.raises(InvalidStatusTransitionError):
            await workflow.resubmit(deal.id, seller)


class TestApprovals:
    """Tests for decide_requirement and pipeline views."""

    async def test_dependencies_enforced(self, workflow, make_deal, seller, approver):
        deal = await _under_review(workflow, make_deal, seller, approver)
        with pytest.raises(ApprovalDependencyError, match="incentive-finance"):
            await workflow.decide_requirement(
                deal.id, f"{deal.id}-margin-trading", ApprovalStatus.APPROVED, approver
            )

    async def test_full_approval_does_not_move_deal(
        self, workflow, make_deal, seller, approver
    ):
        deal = await _under_review(workflow, make_deal, seller, approver)
        for suffix in ("incentive-finance", "margin-trading", "final-executive"):
            updated = await workflow.decide_requirement(
                deal.id, f"{deal.id}-{suffix}", ApprovalStatus.APPROVED, approver
            )
            assert updated.reviewer == approver.email
            assert updated.completed_at is not None

        status, follow_ups = await workflow.approval_status(deal.id, approver)
        assert status.overall_status == ApprovalStatus.APPROVED
        assert status.percent_complete == 100
        assert follow_ups == []
        assert (await workflow.get_deal(deal.id, approver)).status == DealStatus.UNDER_REVIEW

    async def test_decided_requirement_cannot_be_flipped(
        self, workflow, make_deal, seller, approver
    ):
        deal = await _under_review(workflow, make_deal, seller, approver)
        finance_id = f"{deal.id}-incentive-finance"
        await workflow.decide_requirement(deal.id, finance_id, ApprovalStatus.APPROVED, approver)

        with pytest.raises(RequirementClosedError, match="already approved"):
            await workflow.decide_requirement(
                deal.id, finance_id, ApprovalStatus.REVISION_REQUESTED, approver
            )

    async def test_completed_pipeline_stays_approved_after_deal_lost(
        self, workflow, make_deal, seller, approver
    ):
        deal = await _under_review(workflow, make_deal, seller, approver)
        for suffix in ("incentive-finance", "margin-trading", "final-executive"):
            await workflow.decide_requirement(
                deal.id, f"{deal.id}-{suffix}", ApprovalStatus.APPROVED, approver
            )
        await workflow.change_status(deal.id, DealStatus.LOST, approver)

        with pytest.raises(RequirementClosedError, match="while the deal is lost"):
            await workflow.decide_requirement(
                deal.id,
                f"{deal.id}-incentive-finance",
                ApprovalStatus.REVISION_REQUESTED,
                approver,
            )
        status, _ = await workflow.approval_status(deal.id, approver)
        assert status.overall_status == ApprovalStatus.APPROVED

    async def test_no_decisions_while_revision_requested(
        self, workflow, make_deal, seller, approver
    ):
        deal = await _under_review(workflow, make_deal, seller, approver)
        await workflow.request_revision(deal.id, approver, "Rework tiers")

        with pytest.raises(RequirementClosedError, match="revision_requested"):
            await workflow.decide_requirement(
                deal.id, f"{deal.id}-incentive-finance", ApprovalStatus.APPROVED, approver
            )

    async def test_decisions_allowed_while_negotiating(
        self, workflow, make_deal, seller, approver
    ):
        deal = await _under_review(workflow, make_deal, seller, approver)
        await workflow.change_status(deal.id, DealStatus.NEGOTIATING, approver)
        updated = await workflow.decide_requirement(
            deal.id, f"{deal.id}-incentive-finance", ApprovalStatus.APPROVED, approver
        )
        assert updated.status == ApprovalStatus.APPROVED

    async def test_legal_cannot_approve_requirements(
        self, workflow, make_deal, seller, approver, legal
    ):
        deal = await _under_review(workflow, make_deal, seller, approver)
        with pytest.raises(PermissionDeniedError):
            await workflow.decide_requirement(
                deal.id, f"{deal.id}-incentive-finance", ApprovalStatus.APPROVED, legal
            )

    async def test_unknown_requirement(self, workflow, make_deal, seller, approver):
        deal = await _under_review(workflow, make_deal, seller, approver)
        with pytest.raises(ValueError, match="Approval requirement not found"):
            await workflow.decide_requirement(
                deal.id, "nope", ApprovalStatus.APPROVED, approver
            )

    async def test_approval_status_bottlenecks(self, workflow, make_deal, seller):
        deal = await workflow.create_deal(make_deal(), seller)
        later = datetime.now(timezone.utc) + timedelta(days=3)
        status, follow_ups = await workflow.approval_status(deal.id, seller, now=later)

        assert status.deal_id == deal.id
        assert status.next_actions == ["Waiting for Finance Team approval"]
        assert len(status.bottlenecks) == 3
        assert follow_ups[0] == "Contact Finance Team about pending approval (3 days)"

    async def test_approval_status_without_requirements(self, workflow, make_deal, seller):
        deal = await workflow.create_deal(make_deal(status=DealStatus.DRAFT), seller)
        status, follow_ups = await workflow.approval_status(deal.id, seller)
        assert status.deal_id == deal.id
        assert status.stages == []
        assert follow_ups == []

    async def test_approval_path(self, workflow, make_deal, seller):
        deal = await workflow.create_deal(make_deal(), seller)
        prediction = await workflow.approval_path(deal.id, seller)

        assert [s.department.value for s in prediction.stage1] == [
            "finance",
            "trading",
            "solutions",
        ]
        assert prediction.stage2.approver.level == ApproverLevel.EXECUTIVE
        assert prediction.total_timeline_range == "6-8 business days"

    async def test_approval_alert(self, workflow, make_deal, seller):
        deal = await workflow.create_deal(make_deal(), seller)
        alert = await workflow.approval_alert(deal.id, seller)
        assert alert.level == "warning"
        assert "Yearly revenue growth rate < 25%" in alert.reasons

    async def test_deal_parameters_use_expected_tier(self, workflow, repo, make_deal, seller):
        deal = await workflow.create_deal(make_deal(contract_term_months=24), seller)
        params = deal_parameters(deal, await repo.get_tiers(deal.id))
        assert params.annual_value == 400_000
        assert params.total_value == 800_000
        assert params.contract_term_months == 24


class TestCollaboration:
    """Tests for comments, nudges and counts."""

    async def test_comments(self, workflow, make_deal, seller, approver):
        deal = await workflow.create_deal(make_deal(), seller)
        await workflow.add_comment(deal.id, approver, "Looks promising")
        comments = await workflow.list_comments(deal.id, seller)
        assert [c.content for c in comments] == ["Looks promising"]
        assert comments[0].author_role == UserRole.APPROVER

    async def test_nudge_recorded_in_history(self, workflow, make_deal, seller):
        deal = await workflow.create_deal(make_deal(), seller)
        entry = await workflow.nudge(deal.id, seller, UserRole.APPROVER, "Any update?")

        assert entry.status == DealStatus.SUBMITTED
        assert entry.previous_status == DealStatus.SUBMITTED
        assert entry.comments == "NUDGE from seller@company.com to approver: Any update?"
        assert (await workflow.get_deal(deal.id, seller)).status == DealStatus.SUBMITTED

    async def test_status_counts(self, workflow, make_deal, seller, approver):
        await workflow.create_deal(make_deal(), seller)
        await workflow.create_deal(make_deal(), seller)
        await workflow.create_deal(make_deal(status=DealStatus.DRAFT), seller)
        assert await workflow.status_counts(approver) == {"submitted": 2, "draft": 1}

        other = CurrentUser(id="other", email="other@company.com", role=UserRole.SELLER)
        assert await workflow.status_counts(other) == {}

    async def test_financial_summary(self, workflow, make_deal, seller):
        deal = await workflow.create_deal(make_deal(), seller)
        summary = await workflow.financial_summary(deal.id, seller)
        assert summary.total_revenue == pytest.approx(700_000)
        assert summary.adjusted_gross_profit == pytest.approx(203_000)
        assert summary.expected_tier_number == 2

    async def test_assess(self, workflow, make_deal, seller):
        deal = await workflow.create_deal(make_deal(), seller)
        assessment = await workflow.assess(deal.id, seller, HeuristicDealAssessor())
        assert assessment.source == "heuristic"


class TestScopingRequests:
    """Tests for scoping request triage and conversion."""

    async def test_create_defaults_owner_and_email(self, workflow, make_scoping, seller):
        request = await workflow.create_scoping_request(make_scoping(), seller)
        assert request.status == ScopingRequestStatus.PENDING
        assert request.owner_id == seller.id
        assert request.email == seller.email

    async def test_growth_ambition_minimum(self, make_scoping):
        with pytest.raises(ValueError, match="greater than or equal to 1000000"):
            make_scoping(growth_ambition=500_000)

    async def test_sellers_only_see_their_own(
        self, workflow, make_scoping, seller, approver
    ):
        request = await workflow.create_scoping_request(make_scoping(), seller)
        other = CurrentUser(id="other", email="other@company.com", role=UserRole.SELLER)

        with pytest.raises(ScopingRequestNotFoundError):
            await workflow.get_scoping_request(request.id, other)
        assert await workflow.list_scoping_requests(other) == []
        assert [r.id for r in await workflow.list_scoping_requests(approver)] == [request.id]

    async def test_approver_triages(self, workflow, make_scoping, seller, approver):
        request = await workflow.create_scoping_request(make_scoping(), seller)
        updated = await workflow.update_scoping_status(
            request.id, ScopingRequestStatus.IN_PROGRESS, approver
        )
        assert updated.status == ScopingRequestStatus.IN_PROGRESS

        in_progress = await workflow.list_scoping_requests(
            approver, status=ScopingRequestStatus.IN_PROGRESS
        )
        assert [r.id for r in in_progress] == [request.id]

    async def test_seller_cannot_triage(self, workflow, make_scoping, seller):
        request = await workflow.create_scoping_request(make_scoping(), seller)
        with pytest.raises(PermissionDeniedError):
            await workflow.update_scoping_status(
                request.id, ScopingRequestStatus.REJECTED, seller
            )

    async def test_converted_status_only_via_conversion(
        self, workflow, make_scoping, seller, approver
    ):
        request = await workflow.create_scoping_request(make_scoping(), seller)
        with pytest.raises(ScopingRequestClosedError):
            await workflow.update_scoping_status(
                request.id, ScopingRequestStatus.CONVERTED, approver
            )

    async def test_convert_creates_submitted_deal(
        self, workflow, repo, make_scoping, make_deal, seller
    ):
        request = await workflow.create_scoping_request(make_scoping(), seller)
        deal, converted = await workflow.convert_scoping_request(
            request.id, ScopingConversion(tiers=make_deal().tiers), seller
        )

        assert deal.deal_name == "Acme 2027 Expansion"
        assert deal.advertiser_name == "Acme"
        assert deal.region == "west"
        assert deal.deal_structure == DealStructure.FLAT_COMMIT
        assert deal.business_summary == "Quarterly reporting"
        assert deal.status == DealStatus.SUBMITTED
        assert deal.owner_id == seller.id
        assert len(await repo.list_approval_requirements(deal.id)) == 3

        assert converted.status == ScopingRequestStatus.CONVERTED
        assert converted.converted_deal_id == deal.id
        assert converted.converted_at is not None

    async def test_convert_twice_rejected(self, workflow, make_scoping, make_deal, seller):
        request = await workflow.create_scoping_request(make_scoping(), seller)
        conversion = ScopingConversion(tiers=make_deal().tiers)
        await workflow.convert_scoping_request(request.id, conversion, seller)

        with pytest.raises(ScopingRequestClosedError, match="already converted"):
            await workflow.convert_scoping_request(request.id, conversion, seller)
        assert len(await workflow.list_deals(seller)) == 1

    async def test_rejected_request_cannot_convert(
        self, workflow, make_scoping, make_deal, seller, approver
    ):
        request = await workflow.create_scoping_request(make_scoping(), seller)
        await workflow.update_scoping_status(request.id, ScopingRequestStatus.REJECTED, approver)

        with pytest.raises(ScopingRequestClosedError, match="already rejected"):
            await workflow.convert_scoping_request(
                request.id, ScopingConversion(tiers=make_deal().tiers), seller
            )
        with pytest.raises(ScopingRequestClosedError):
            await workflow.update_scoping_status(
                request.id, ScopingRequestStatus.PENDING, approver
            )

    async def test_convert_without_tiers_leaves_request_open(
        self, workflow, make_scoping, seller
    ):
        request = await workflow.create_scoping_request(make_scoping(), seller)
        with pytest.raises(TierValidationError):
            await workflow.convert_scoping_request(request.id, ScopingConversion(), seller)

        unchanged = await workflow.get_scoping_request(request.id, seller)
        assert unchanged.status == ScopingRequestStatus.PENDING

    async def test_approver_cannot_convert(
        self, workflow, make_scoping, make_deal, seller, approver
    ):
        request = await workflow.create_scoping_request(make_scoping(), seller)
        with pytest.raises(PermissionDeniedError):
            await workflow.convert_scoping_request(
                request.id, ScopingConversion(tiers=make_deal().tiers), approver
            )
