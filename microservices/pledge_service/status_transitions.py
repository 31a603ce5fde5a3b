"""
Pledge and campaign status transitions

Each status field has a table of legal source -> target moves. The repository
guards every status write with ``allowed_sources`` so a row only moves when it
is currently in one of the listed source states.
"""

from enum import Enum
from typing import Dict, Set, Type, Union

from .models import CampaignStatus, ChargeStatus, SetupStatus
from .protocols import InvalidStatusTransitionError


SETUP_TRANSITIONS: Dict[SetupStatus, Set[SetupStatus]] = {
    SetupStatus.PENDING: {SetupStatus.COMPLETE, SetupStatus.FAILED},
    SetupStatus.FAILED: {SetupStatus.COMPLETE, SetupStatus.FAILED},
    SetupStatus.COMPLETE: {SetupStatus.COMPLETE},
}

CHARGE_TRANSITIONS: Dict[ChargeStatus, Set[ChargeStatus]] = {
    ChargeStatus.NOT_CHARGED: {
        ChargeStatus.CHARGED,
        ChargeStatus.SKIPPED,
        ChargeStatus.FAILED,
        ChargeStatus.REQUIRES_ACTION,
    },
    ChargeStatus.CHARGED: set(),
    ChargeStatus.SKIPPED: set(),
    ChargeStatus.FAILED: set(),
    ChargeStatus.REQUIRES_ACTION: set(),
}

CAMPAIGN_TRANSITIONS: Dict[CampaignStatus, Set[CampaignStatus]] = {
    CampaignStatus.OPEN: {CampaignStatus.LOCKED},
    CampaignStatus.LOCKED: {CampaignStatus.LOCKED, CampaignStatus.CHARGED},
    CampaignStatus.CHARGED: {CampaignStatus.CHARGED},
}

StatusValue = Union[SetupStatus, ChargeStatus, CampaignStatus]

_TABLES: Dict[Type[Enum], Dict] = {
    SetupStatus: SETUP_TRANSITIONS,
    ChargeStatus: CHARGE_TRANSITIONS,
    CampaignStatus: CAMPAIGN_TRANSITIONS,
}


def _table_for(status: StatusValue) -> Dict:
    return _TABLES[type(status)]


def can_transition(current: StatusValue, target: StatusValue) -> bool:
    """Whether ``current -> target`` is a legal move"""
    if type(current) is not type(target):
        return False
    return target in _table_for(current).get(current, set())


def ensure_transition(current: StatusValue, target: StatusValue) -> None:
    """Raise InvalidStatusTransitionError unless ``current -> target`` is legal"""
    if not can_transition(current, target):
        raise InvalidStatusTransitionError(
            f"Cannot move {type(target).__name__} from {current.value} to {target.value}",
            current=current,
            target=target,
        )


def allowed_sources(target: StatusValue) -> Set[StatusValue]:
    """Every status from which ``target`` is reachable in one move"""
    table = _table_for(target)
    return {source for source, targets in table.items() if target in targets}


__all__ = [
    "SETUP_TRANSITIONS",
    "CHARGE_TRANSITIONS",
    "CAMPAIGN_TRANSITIONS",
    "can_transition",
    "ensure_transition",
    "allowed_sources",
]
