"""Bracket generation service."""
from __future__ import annotations

import logging
import random
import string
import uuid
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from draws.domain import (
    Draw,
    DrawType,
    Match,
    SeedingMethod,
    match_id_for,
)
from draws.services.errors import InvalidConfiguration, Unsupported

logger = logging.getLogger("olympiad.draws")


def next_power_of_2(n: int) -> int:
    """Round up to next power of 2."""
    p = 1
    while p < n:
        p *= 2
    return p


def elimination_rounds(n: int) -> int:
    """ceil(log2(n)): rounds needed to reduce n participants to one champion."""
    return (n - 1).bit_length() if n > 1 else 0


def round_label(round_num: int, total_rounds: int) -> str:
    """Display label for an elimination round: "Final", "Semi-Final", else "Round N"."""
    remaining = total_rounds - round_num
    if remaining == 0:
        return "Final"
    if remaining == 1:
        return "Semi-Final"
    return f"Round {round_num}"


def label_for(draw: Draw, round_num: int) -> str:
    """Round label for any draw type. Round robin rounds are scheduling slots, not stages."""
    if draw.is_elimination:
        return round_label(round_num, draw.total_rounds)
    return f"Round {round_num}"


def _coerce(value, enum_cls, what: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidConfiguration(f"Unknown {what}: {value!r}") from None


def _validate_participants(participants: Sequence[str]) -> List[str]:
    refs = list(participants or [])
    if not refs:
        raise InvalidConfiguration("A draw needs at least one participant")
    seen = set()
    for ref in refs:
        if not isinstance(ref, str) or not ref.strip():
            raise InvalidConfiguration(f"Invalid participant reference: {ref!r}")
        if ref in seen:
            raise InvalidConfiguration(f"Duplicate participant: {ref}")
        seen.add(ref)
    return refs


def seed_participants(
    participants: Sequence[str],
    seeding_method: SeedingMethod,
    rng: Optional[random.Random] = None,
) -> List[str]:
    """Order participants for slotting. Ranked and manual keep the caller's order."""
    seeded = list(participants)
    if seeding_method == SeedingMethod.RANDOM:
        (rng or random.Random()).shuffle(seeded)
    return seeded


def default_slots(seeded: Sequence[str]) -> List[Optional[str]]:
    """Round-1 slot list for a single-elimination bracket.

    Top seeds receive the byes, one each, in the first positions; everyone
    else pairs off in order (3v4, 5v6, ...). None marks a bye slot.
    """
    n = len(seeded)
    byes = next_power_of_2(n) - n
    slots: List[Optional[str]] = []
    for i in range(byes):
        slots.extend([seeded[i], None])
    slots.extend(seeded[byes:])
    return slots


def _validate_slot_assignment(
    slot_assignment: Sequence[Optional[str]], participants: Sequence[str]
) -> List[Optional[str]]:
    size = next_power_of_2(len(participants))
    slots = list(slot_assignment)
    if len(slots) != size:
        raise InvalidConfiguration(
            f"Slot assignment needs {size} slots for {len(participants)} participants, got {len(slots)}"
        )
    filled = [s for s in slots if s is not None]
    if len(filled) != len(set(filled)) or set(filled) != set(participants):
        raise InvalidConfiguration("Slot assignment must place every participant exactly once")
    return slots


def _single_elim_matches(slots: Sequence[Optional[str]]) -> Tuple[Dict[str, Match], int]:
    """Build every match of a single-elimination bracket from round-1 slots.

    Bye positions create no match; their occupant goes straight into the
    round-2 slot the position feeds (odd position -> slot 1, even -> slot 2).
    """
    size = len(slots)
    total_rounds = elimination_rounds(size)
    matches: Dict[str, Match] = {}
    byes: List[Tuple[int, str]] = []

    for p in range(1, size // 2 + 1):
        s1, s2 = slots[2 * p - 2], slots[2 * p - 1]
        if s1 is None and s2 is None:
            raise InvalidConfiguration(f"Round 1 position {p} has no participants")
        if s1 is not None and s2 is not None:
            matches[match_id_for(1, p)] = Match(
                id=match_id_for(1, p), round=1, position=p,
                participant1_ref=s1, participant2_ref=s2,
            )
        else:
            byes.append((p, s1 if s1 is not None else s2))

    for r in range(2, total_rounds + 1):
        for p in range(1, (size >> r) + 1):
            matches[match_id_for(r, p)] = Match(id=match_id_for(r, p), round=r, position=p)

    for p, occupant in byes:
        target = matches[match_id_for(2, (p + 1) // 2)]
        if p % 2:
            target.participant1_ref = occupant
        else:
            target.participant2_ref = occupant

    return matches, total_rounds


def round_robin_pairings(n: int) -> Iterator[Tuple[int, int, int]]:
    """Circle method. Yields (round, idx_a, idx_b) with 0-based seed indices, idx_a < idx_b.

    Even n: n-1 rounds. Odd n: n rounds, one participant idle per round.
    """
    positions: List[Optional[int]] = list(range(n))
    if n % 2:
        positions.append(None)
    m = len(positions)
    for r in range(1, m):
        for i in range(m // 2):
            a, b = positions[i], positions[m - 1 - i]
            if a is None or b is None:
                continue
            yield r, min(a, b), max(a, b)
        # Fix the first position, rotate the rest clockwise
        positions = [positions[0], positions[-1]] + positions[1:-1]


def _group_label(idx: int) -> str:
    if idx < len(string.ascii_uppercase):
        return string.ascii_uppercase[idx]
    return f"G{idx + 1}"


def split_groups(seeded: Sequence[str], group_size: int) -> List[List[str]]:
    """Deal participants into ceil(n / group_size) groups in seed order (seed i -> group i mod g)."""
    num_groups = -(-len(seeded) // group_size)
    groups: List[List[str]] = [[] for _ in range(num_groups)]
    for i, ref in enumerate(seeded):
        groups[i % num_groups].append(ref)
    return groups


def _round_robin_matches(groups: Sequence[Tuple[Optional[str], Sequence[str]]]) -> Tuple[Dict[str, Match], int]:
    """Round robin inside each group. Positions run across groups within a round."""
    matches: Dict[str, Match] = {}
    next_position: Dict[int, int] = {}
    total_rounds = 0
    for label, members in groups:
        for r, a, b in round_robin_pairings(len(members)):
            pos = next_position.get(r, 1)
            next_position[r] = pos + 1
            mid = match_id_for(r, pos)
            matches[mid] = Match(
                id=mid, round=r, position=pos,
                participant1_ref=members[a], participant2_ref=members[b],
                group_label=label,
            )
            total_rounds = max(total_rounds, r)
    return matches, total_rounds


def generate(
    event_id: str,
    participants: Sequence[str],
    draw_type,
    seeding_method,
    *,
    slot_assignment: Optional[Sequence[Optional[str]]] = None,
    group_size: Optional[int] = None,
    created_by: Optional[str] = None,
    rng: Optional[random.Random] = None,
) -> Draw:
    """Build a draft draw with every match laid out. Nothing is persisted."""
    if not event_id:
        raise InvalidConfiguration("event_id is required")
    draw_type = _coerce(draw_type, DrawType, "draw type")
    seeding_method = _coerce(seeding_method, SeedingMethod, "seeding method")
    refs = _validate_participants(participants)

    if draw_type == DrawType.DOUBLE_ELIMINATION:
        raise Unsupported("Double elimination draws are not supported yet")
    if slot_assignment is not None:
        if seeding_method != SeedingMethod.MANUAL:
            raise InvalidConfiguration("Slot assignment requires manual seeding")
        if draw_type != DrawType.SINGLE_ELIMINATION:
            raise InvalidConfiguration("Slot assignment only applies to elimination draws")

    if len(refs) < 2:
        raise InvalidConfiguration("A draw needs at least 2 participants")

    seeded = seed_participants(refs, seeding_method, rng)

    if draw_type == DrawType.SINGLE_ELIMINATION:
        if slot_assignment is not None:
            slots = _validate_slot_assignment(slot_assignment, seeded)
        else:
            slots = default_slots(seeded)
        matches, total_rounds = _single_elim_matches(slots)
        group_size = None
    elif draw_type == DrawType.ROUND_ROBIN:
        matches, total_rounds = _round_robin_matches([(None, seeded)])
        group_size = None
    else:
        if group_size is None:
            raise Unsupported("Group stage draws need a group size")
        if group_size < 2:
            raise InvalidConfiguration("Group size must be at least 2")
        groups = split_groups(seeded, group_size)
        if min(len(g) for g in groups) < 2:
            raise InvalidConfiguration(
                f"{len(seeded)} participants cannot be split into groups of {group_size} with 2+ members each"
            )
        matches, total_rounds = _round_robin_matches(
            [(_group_label(i), g) for i, g in enumerate(groups)]
        )

    draw = Draw(
        id=uuid.uuid4().hex,
        event_id=str(event_id),
        draw_type=draw_type,
        seeding_method=seeding_method,
        participants=seeded,
        matches=matches,
        total_rounds=total_rounds,
        group_size=group_size,
        created_by=created_by,
    )
    logger.info(
        "Generated %s draw %s for event %s: %d participants, %d matches, %d rounds",
        draw_type.value, draw.id, event_id, len(seeded), len(matches), total_rounds,
    )
    return draw
