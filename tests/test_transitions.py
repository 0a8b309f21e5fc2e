"""Unit tests for the deal status state machine and permission matrix."""

from __future__ import annotations

import pytest

from src.dealdesk.approvals.transitions import (
    ROLE_STATUS_PERMISSIONS,
    STATUS_TRANSITIONS,
    InvalidStatusTransitionError,
    Permission,
    PermissionDeniedError,
    TransitionNotPermittedError,
    can_transition,
    get_allowed_transitions,
    get_status_info,
    has_permission,
    is_terminal,
    require_permission,
    sort_by_status_priority,
    validate_transition,
)
from src.dealdesk.deals.schemas import DealStatus, UserRole

ADJACENT_PAIRS = [
    (current, target)
    for current, targets in STATUS_TRANSITIONS.items()
    for target in targets
]


class TestStatusTransitions:
    """Tests for the adjacency table and role gating."""

    def test_every_status_has_an_entry(self) -> None:
        assert set(STATUS_TRANSITIONS) == set(DealStatus)

    def test_terminal_statuses(self) -> None:
        assert is_terminal(DealStatus.SIGNED)
        assert is_terminal(DealStatus.LOST)
        assert not is_terminal(DealStatus.DRAFT)

    def test_no_self_transitions(self) -> None:
        for current, targets in STATUS_TRANSITIONS.items():
            assert current not in targets

    @pytest.mark.parametrize(("current", "target"), ADJACENT_PAIRS)
    def test_admin_may_take_every_legal_transition(
        self, current: DealStatus, target: DealStatus
    ) -> None:
        allowed, reason = can_transition(current, target, UserRole.ADMIN)
        assert allowed is True
        assert reason is None

    def test_seller_may_submit_draft(self) -> None:
        assert can_transition(DealStatus.DRAFT, DealStatus.SUBMITTED, UserRole.SELLER) == (True, None)

    def test_seller_cannot_approve(self) -> None:
        allowed, reason = can_transition(
            DealStatus.UNDER_REVIEW, DealStatus.APPROVED, UserRole.SELLER
        )
        assert allowed is False
        assert reason == "seller cannot modify deals in under_review status"

    def test_non_adjacent_transition_rejected_with_reason(self) -> None:
        allowed, reason = can_transition(DealStatus.DRAFT, DealStatus.SIGNED, UserRole.ADMIN)
        assert allowed is False
        assert reason == "Cannot transition from draft to signed as admin"

    def test_role_status_sets(self) -> None:
        assert DealStatus.APPROVED in ROLE_STATUS_PERMISSIONS[UserRole.LEGAL]
        assert DealStatus.APPROVED not in ROLE_STATUS_PERMISSIONS[UserRole.APPROVER]


class TestValidateTransition:
    """Tests for validate_transition error types."""

    def test_illegal_transition_raises_value_error(self) -> None:
        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            validate_transition(DealStatus.SIGNED, DealStatus.DRAFT, UserRole.ADMIN)
        assert isinstance(exc_info.value, ValueError)
        assert "Allowed transitions from signed: none" in str(exc_info.value)

    def test_illegal_transition_checked_before_role(self) -> None:
        with pytest.raises(InvalidStatusTransitionError):
            validate_transition(DealStatus.UNDER_REVIEW, DealStatus.SIGNED, UserRole.SELLER)

    def test_unpermitted_role_raises_permission_error(self) -> None:
        with pytest.raises(TransitionNotPermittedError) as exc_info:
            validate_transition(DealStatus.SUBMITTED, DealStatus.UNDER_REVIEW, UserRole.SELLER)
        assert isinstance(exc_info.value, PermissionError)

    def test_legal_transition_passes(self) -> None:
        validate_transition(DealStatus.APPROVED, DealStatus.LEGAL_REVIEW, UserRole.LEGAL)


class TestAllowedTransitions:
    """Tests for get_allowed_transitions ordering."""

    def test_approver_under_review(self) -> None:
        assert get_allowed_transitions(DealStatus.UNDER_REVIEW, UserRole.APPROVER) == [
            DealStatus.REVISION_REQUESTED,
            DealStatus.NEGOTIATING,
            DealStatus.APPROVED,
            DealStatus.LOST,
        ]

    def test_role_without_access_gets_nothing(self) -> None:
        assert get_allowed_transitions(DealStatus.UNDER_REVIEW, UserRole.SELLER) == []

    def test_terminal_status_has_no_options(self) -> None:
        assert get_allowed_transitions(DealStatus.SIGNED, UserRole.ADMIN) == []

    def test_sort_by_status_priority(self) -> None:
        items = [{"s": DealStatus.LOST}, {"s": DealStatus.DRAFT}, {"s": DealStatus.APPROVED}]
        ordered = sort_by_status_priority(items, key=lambda item: item["s"])
        assert [item["s"] for item in ordered] == [
            DealStatus.DRAFT,
            DealStatus.APPROVED,
            DealStatus.LOST,
        ]

    def test_status_info(self) -> None:
        info = get_status_info(DealStatus.UNDER_REVIEW)
        assert info.label == "Under Review"
        assert info.priority == 4


class TestPermissions:
    """Tests for the action permission matrix."""

    @pytest.mark.parametrize(
        ("role", "permission", "expected"),
        [
            (UserRole.SELLER, Permission.CREATE_DEAL, True),
            (UserRole.SELLER, Permission.APPROVE_REQUIREMENT, False),
            (UserRole.SELLER, Permission.VIEW_ALL_DEALS, False),
            (UserRole.APPROVER, Permission.APPROVE_REQUIREMENT, True),
            (UserRole.APPROVER, Permission.CREATE_DEAL, False),
            (UserRole.LEGAL, Permission.REQUEST_REVISION, True),
            (UserRole.LEGAL, Permission.APPROVE_REQUIREMENT, False),
            (UserRole.ADMIN, Permission.MANAGE_USERS, True),
        ],
    )
    def test_has_permission(
        self, role: UserRole, permission: Permission, expected: bool
    ) -> None:
        assert has_permission(role, permission) is expected

    def test_admin_holds_every_permission(self) -> None:
        assert all(has_permission(UserRole.ADMIN, p) for p in Permission)

    def test_require_permission_message(self) -> None:
        with pytest.raises(PermissionDeniedError, match="seller cannot approve requirement"):
            require_permission(UserRole.SELLER, Permission.APPROVE_REQUIREMENT)
