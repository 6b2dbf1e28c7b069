"""Commission settlement for salon staff.

Turns each staff member's gross production into the amount actually owed to
them. Rules live in a small table of :class:`StaffCommissionRule` entries:
regular staff keep ``self_share_percent`` of their gross and hand the rest to
the owner, while the single owner entry keeps all of its own production plus
every fee retained from the others.

Everything here is a pure function of its arguments. Nothing is cached and
there is no notion of a settlement period or a "paid" flag; calling
:func:`settle` again after more services are recorded simply yields the new
figures.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Iterable, List, Mapping, Sequence, Tuple, Union

from . import log
from .constants import StaffMember


OWNER_NOTE = "100% + staff fees"


@dataclass(frozen=True)
class StaffCommissionRule:
    """How one staff identity's gross production is split."""

    staff_id: str
    self_share_percent: int
    is_owner: bool = False


@dataclass(frozen=True)
class StaffSettlement:
    """Net payout for one staff member over a window of services."""

    staff_id: str
    gross: int
    net_payout: int
    owner_fee: int
    self_share_percent: int
    note: str
    is_owner: bool


DEFAULT_COMMISSION_RULES: Tuple[StaffCommissionRule, ...] = (
    StaffCommissionRule(StaffMember.LUZ.value, 100, is_owner=True),
    StaffCommissionRule(StaffMember.JHON.value, 60),
    StaffCommissionRule(StaffMember.NELLY.value, 50),
)


def round_half_away_from_zero(value: Union[Decimal, int, str]) -> int:
    """Round to the nearest integer, sending exact halves away from zero.

    ``Decimal``'s ``ROUND_HALF_UP`` mode rounds ties away from zero for both
    signs, unlike Python's built-in :func:`round`, which rounds ties to even.
    Precision is widened for values with more integer digits than the default
    context holds.
    """

    amount = Decimal(value)
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, amount.adjusted() + 2)
        return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def validate_commission_rules(rules: Sequence[StaffCommissionRule]) -> None:
    """Check that a commission table is usable.

    Raises:
        ValueError: If a staff id repeats, a percentage falls outside 0..100,
            or more than one entry is flagged as owner.
    """

    seen = set()
    owners = []
    for rule in rules:
        if rule.staff_id in seen:
            raise ValueError(f"Duplicate commission rule for '{rule.staff_id}'")
        seen.add(rule.staff_id)
        if not 0 <= rule.self_share_percent <= 100:
            raise ValueError(
                f"Self-share for '{rule.staff_id}' must be between 0 and 100, got {rule.self_share_percent}"
            )
        if rule.is_owner:
            owners.append(rule.staff_id)
    if len(owners) > 1:
        raise ValueError(f"Only one owner allowed, found: {', '.join(owners)}")


def split_gross(gross: int, self_share_percent: int) -> Tuple[int, int]:
    """Split ``gross`` into ``(self_pay, owner_fee)``.

    ``self_pay`` is rounded once, half away from zero. ``owner_fee`` is the
    remainder rather than an independently rounded percentage, so the two
    parts always add back up to ``gross``.
    """

    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, len(str(abs(gross))) + 6)
        share = Decimal(gross) * self_share_percent / 100
    self_pay = round_half_away_from_zero(share)
    return self_pay, gross - self_pay


def describe_rule(rule: StaffCommissionRule) -> str:
    """Human-readable note for the split applied to ``rule``'s staff member."""

    if rule.is_owner:
        return OWNER_NOTE
    return f"{100 - rule.self_share_percent}% to owner"


def settle(
    gross_by_staff: Mapping[str, int],
    rules: Iterable[StaffCommissionRule] = DEFAULT_COMMISSION_RULES,
) -> List[StaffSettlement]:
    """Compute net payouts for every configured staff member.

    Args:
        gross_by_staff (Mapping[str, int]): Gross production per identity.
            Identities without a rule are ignored; configured identities
            missing from the mapping count as zero.
        rules (Iterable[StaffCommissionRule]): Commission table. Output keeps
            its order.

    Returns:
        list[StaffSettlement]: One entry per rule. The owner's
            ``net_payout`` is the owner's own gross plus the ``owner_fee`` of every
            other entry.
    """

    rules = tuple(rules)
    settlements: List[StaffSettlement] = []
    fees_to_owner = 0

    for rule in rules:
        if rule.is_owner:
            continue
        gross = gross_by_staff.get(rule.staff_id, 0)
        self_pay, owner_fee = split_gross(gross, rule.self_share_percent)
        fees_to_owner += owner_fee
        settlements.append(
            StaffSettlement(
                staff_id=rule.staff_id,
                gross=gross,
                net_payout=self_pay,
                owner_fee=owner_fee,
                self_share_percent=rule.self_share_percent,
                note=describe_rule(rule),
                is_owner=False,
            )
        )

    by_id = {settlement.staff_id: settlement for settlement in settlements}
    ordered: List[StaffSettlement] = []
    for rule in rules:
        if not rule.is_owner:
            ordered.append(by_id[rule.staff_id])
            continue
        own_gross = gross_by_staff.get(rule.staff_id, 0)
        ordered.append(
            StaffSettlement(
                staff_id=rule.staff_id,
                gross=own_gross,
                net_payout=own_gross + fees_to_owner,
                owner_fee=0,
                self_share_percent=rule.self_share_percent,
                note=describe_rule(rule),
                is_owner=True,
            )
        )

    unknown = sorted(set(gross_by_staff) - {rule.staff_id for rule in rules}, key=str)
    if unknown:
        log.debug("Settlement skipped identities without a commission rule: %s", ", ".join(map(str, unknown)))
    log.debug("Settled %d staff members (fees to owner=%s)", len(ordered), fees_to_owner)
    return ordered
