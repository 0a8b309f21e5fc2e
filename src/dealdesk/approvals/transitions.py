"""Deal status state machine and role permission matrix.

Transition legality is the intersection of two static tables:
- STATUS_TRANSITIONS: current status -> statuses it may move to
- ROLE_STATUS_PERMISSIONS: role -> statuses that role may move a deal out of

Action permissions (create, comment, approve, ...) are a separate explicit
matrix: ROLE_PERMISSIONS maps each role to a frozenset of Permission values,
so every check is a single lookup.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from enum import Enum
from typing import TypeVar

from pydantic import BaseModel

from src.dealdesk.deals.schemas import DealStatus, UserRole

T = TypeVar("T")


# ── Status Transitions ──────────────────────────────────────────────────────


STATUS_TRANSITIONS: dict[DealStatus, set[DealStatus]] = {
    DealStatus.DRAFT: {DealStatus.SCOPING, DealStatus.SUBMITTED},
    DealStatus.SCOPING: {DealStatus.SUBMITTED, DealStatus.LOST},
    DealStatus.SUBMITTED: {DealStatus.UNDER_REVIEW, DealStatus.LOST},
    DealStatus.UNDER_REVIEW: {
        DealStatus.REVISION_REQUESTED,
        DealStatus.NEGOTIATING,
        DealStatus.APPROVED,
        DealStatus.LOST,
    },
    DealStatus.REVISION_REQUESTED: {DealStatus.UNDER_REVIEW, DealStatus.LOST},
    DealStatus.NEGOTIATING: {
        DealStatus.REVISION_REQUESTED,
        DealStatus.APPROVED,
        DealStatus.LOST,
    },
    DealStatus.APPROVED: {
        DealStatus.LEGAL_REVIEW,
        DealStatus.CONTRACT_DRAFTING,
        DealStatus.LOST,
    },
    DealStatus.LEGAL_REVIEW: {
        DealStatus.CONTRACT_DRAFTING,
        DealStatus.REVISION_REQUESTED,
        DealStatus.LOST,
    },
    DealStatus.CONTRACT_DRAFTING: {DealStatus.CLIENT_REVIEW, DealStatus.LOST},
    DealStatus.CLIENT_REVIEW: {
        DealStatus.SIGNED,
        DealStatus.NEGOTIATING,
        DealStatus.LOST,
    },
    DealStatus.SIGNED: set(),
    DealStatus.LOST: set(),
}

ROLE_STATUS_PERMISSIONS: dict[UserRole, frozenset[DealStatus]] = {
    UserRole.SELLER: frozenset({
        DealStatus.DRAFT,
        DealStatus.SCOPING,
        DealStatus.REVISION_REQUESTED,
    }),
    UserRole.APPROVER: frozenset({
        DealStatus.SUBMITTED,
        DealStatus.UNDER_REVIEW,
        DealStatus.NEGOTIATING,
        DealStatus.CLIENT_REVIEW,
    }),
    UserRole.LEGAL: frozenset({
        DealStatus.APPROVED,
        DealStatus.LEGAL_REVIEW,
        DealStatus.CONTRACT_DRAFTING,
    }),
    UserRole.ADMIN: frozenset(DealStatus),
}

# Statuses from which a reviewer may send a deal back to the seller
REVISION_SOURCE_STATUSES: frozenset[DealStatus] = frozenset({
    DealStatus.UNDER_REVIEW,
    DealStatus.NEGOTIATING,
    DealStatus.LEGAL_REVIEW,
})


class InvalidStatusTransitionError(ValueError):
    """Raised when a status change is not in the adjacency table."""

    def __init__(self, from_status: DealStatus, to_status: DealStatus) -> None:
        self.from_status = from_status
        self.to_status = to_status
        allowed = sorted(s.value for s in STATUS_TRANSITIONS.get(from_status, set()))
        super().__init__(
            f"Invalid status transition: {from_status.value} -> {to_status.value}. "
            f"Allowed transitions from {from_status.value}: {', '.join(allowed) or 'none'}"
        )


class PermissionDeniedError(PermissionError):
    """Raised when a role lacks the permission an action needs."""


class TransitionNotPermittedError(PermissionDeniedError):
    """Raised when the acting role may not perform a legal transition."""


def can_transition(
    current: DealStatus, target: DealStatus, role: UserRole
) -> tuple[bool, str | None]:
    """Check whether a role may move a deal from current to target.

    Returns:
        Tuple of (allowed, reason). reason is None when allowed.
    """
    if current not in ROLE_STATUS_PERMISSIONS.get(role, frozenset()):
        return False, f"{role.value} cannot modify deals in {current.value} status"
    if target not in STATUS_TRANSITIONS.get(current, set()):
        return (
            False,
            f"Cannot transition from {current.value} to {target.value} as {role.value}",
        )
    return True, None


def validate_transition(current: DealStatus, target: DealStatus, role: UserRole) -> None:
    """Raise if the transition is illegal or the role may not perform it.

    Raises:
        InvalidStatusTransitionError: target is not reachable from current.
        TransitionNotPermittedError: role may not modify deals in current status.
    """
    if target not in STATUS_TRANSITIONS.get(current, set()):
        raise InvalidStatusTransitionError(current, target)
    allowed, reason = can_transition(current, target, role)
    if not allowed:
        raise TransitionNotPermittedError(reason)


def get_allowed_transitions(current: DealStatus, role: UserRole) -> list[DealStatus]:
    """Statuses the role may move a deal to, ordered by workflow priority."""
    if current not in ROLE_STATUS_PERMISSIONS.get(role, frozenset()):
        return []
    return sort_by_status_priority(STATUS_TRANSITIONS.get(current, set()), key=lambda s: s)


def is_terminal(status: DealStatus) -> bool:
    return not STATUS_TRANSITIONS.get(status)


# ── Status Display Metadata ─────────────────────────────────────────────────


class StatusInfo(BaseModel):
    status: DealStatus
    label: str
    color: str
    description: str
    priority: int


STATUS_INFO: dict[DealStatus, StatusInfo] = {
    info.status: info
    for info in [
        StatusInfo(status=DealStatus.DRAFT, label="Draft", color="gray", priority=1,
                   description="Deal is being prepared by the seller"),
        StatusInfo(status=DealStatus.SCOPING, label="Scoping", color="slate", priority=2,
                   description="Deal requirements are being scoped"),
        StatusInfo(status=DealStatus.SUBMITTED, label="Submitted", color="blue", priority=3,
                   description="Deal submitted and awaiting review"),
        StatusInfo(status=DealStatus.UNDER_REVIEW, label="Under Review", color="indigo", priority=4,
                   description="Approvers are reviewing the deal"),
        StatusInfo(status=DealStatus.REVISION_REQUESTED, label="Revision Requested", color="orange",
                   priority=5, description="Changes requested before review can continue"),
        StatusInfo(status=DealStatus.NEGOTIATING, label="Negotiating", color="purple", priority=6,
                   description="Terms are being negotiated"),
        StatusInfo(status=DealStatus.APPROVED, label="Approved", color="green", priority=7,
                   description="Deal approved by the required approver"),
        StatusInfo(status=DealStatus.LEGAL_REVIEW, label="Legal Review", color="teal", priority=8,
                   description="Legal team is reviewing terms"),
        StatusInfo(status=DealStatus.CONTRACT_DRAFTING, label="Contract Drafting", color="cyan",
                   priority=9, description="Contract is being drafted"),
        StatusInfo(status=DealStatus.CLIENT_REVIEW, label="Client Review", color="amber", priority=10,
                   description="Client is reviewing the contract"),
        StatusInfo(status=DealStatus.SIGNED, label="Signed", color="emerald", priority=11,
                   description="Contract signed"),
        StatusInfo(status=DealStatus.LOST, label="Lost", color="red", priority=12,
                   description="Deal lost or abandoned"),
    ]
}


def get_status_info(status: DealStatus) -> StatusInfo:
    return STATUS_INFO[status]


def sort_by_status_priority(
    items: Iterable[T], key: Callable[[T], DealStatus]
) -> list[T]:
    return sorted(items, key=lambda item: STATUS_INFO[key(item)].priority)


# ── Action Permission Matrix ────────────────────────────────────────────────


class Permission(str, Enum):
    CREATE_DEAL = "create_deal"
    VIEW_ALL_DEALS = "view_all_deals"
    COMMENT = "comment"
    NUDGE = "nudge"
    REQUEST_REVISION = "request_revision"
    APPROVE_REQUIREMENT = "approve_requirement"
    CHANGE_STATUS = "change_status"
    REVIEW_SCOPING = "review_scoping"
    MANAGE_USERS = "manage_users"


ROLE_PERMISSIONS: dict[UserRole, frozenset[Permission]] = {
    UserRole.SELLER: frozenset({
        Permission.CREATE_DEAL,
        Permission.COMMENT,
        Permission.NUDGE,
        Permission.CHANGE_STATUS,
    }),
    UserRole.APPROVER: frozenset({
        Permission.VIEW_ALL_DEALS,
        Permission.COMMENT,
        Permission.NUDGE,
        Permission.REQUEST_REVISION,
        Permission.APPROVE_REQUIREMENT,
        Permission.CHANGE_STATUS,
        Permission.REVIEW_SCOPING,
    }),
    UserRole.LEGAL: frozenset({
        Permission.VIEW_ALL_DEALS,
        Permission.COMMENT,
        Permission.NUDGE,
        Permission.REQUEST_REVISION,
        Permission.CHANGE_STATUS,
    }),
    UserRole.ADMIN: frozenset(Permission),
}


def has_permission(role: UserRole, permission: Permission) -> bool:
    return permission in ROLE_PERMISSIONS.get(role, frozenset())


def require_permission(role: UserRole, permission: Permission) -> None:
    """Raise PermissionDeniedError unless role holds permission."""
    if not has_permission(role, permission):
        raise PermissionDeniedError(f"{role.value} cannot {permission.value.replace('_', ' ')}")
