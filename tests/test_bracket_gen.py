"""Tests for bracket generation."""
import random
from collections import Counter

import pytest

from draws.domain import DrawStatus, MatchStatus
from draws.services.bracket_gen import (
    elimination_rounds,
    generate,
    label_for,
    round_label,
    round_robin_pairings,
)
from draws.services.errors import InvalidConfiguration, Unsupported


def refs(n):
    return [f"P{i}" for i in range(1, n + 1)]


def test_four_ranked_participants_layout():
    """A,B,C,D ranked: A v B, C v D, empty final."""
    draw = generate("ev1", ["A", "B", "C", "D"], "single_elimination", "ranked")
    assert draw.status == DrawStatus.DRAFT
    assert draw.total_rounds == 2
    assert set(draw.matches) == {"R1-M1", "R1-M2", "R2-M1"}
    m1, m2, final = draw.matches["R1-M1"], draw.matches["R1-M2"], draw.matches["R2-M1"]
    assert (m1.participant1_ref, m1.participant2_ref) == ("A", "B")
    assert (m2.participant1_ref, m2.participant2_ref) == ("C", "D")
    assert final.participant1_ref is None and final.participant2_ref is None
    for m in draw.matches.values():
        assert m.status == MatchStatus.PENDING
        assert m.winner_ref is None
        assert m.score.score1 is None and m.score.score2 is None


@pytest.mark.parametrize("n", range(2, 18))
def test_single_elimination_shape(n):
    """n-1 matches over ceil(log2 n) rounds, one final, every participant slotted once."""
    participants = refs(n)
    draw = generate("ev1", participants, "single_elimination", "ranked")
    total_rounds = elimination_rounds(n)
    assert draw.total_rounds == total_rounds
    assert len(draw.matches) == n - 1
    rounds = draw.matches_by_round()
    assert sorted(rounds) == list(range(1, total_rounds + 1))
    assert len(rounds[total_rounds]) == 1
    # Round-1 players plus bye occupants already sitting in round 2
    slotted = [
        ref
        for m in draw.matches.values()
        if m.round <= 2
        for ref in (m.participant1_ref, m.participant2_ref)
        if ref is not None
    ]
    assert Counter(slotted) == Counter(participants)


def test_elimination_rounds_is_ceil_log2():
    assert [elimination_rounds(n) for n in (2, 3, 4, 5, 8, 9, 16, 17)] == [1, 2, 2, 3, 3, 4, 4, 5]


def test_top_seeds_get_byes():
    """Five ranked participants: three byes for the top three seeds, D v E plays round 1."""
    draw = generate("ev1", ["A", "B", "C", "D", "E"], "single_elimination", "ranked")
    round1 = draw.matches_by_round()[1]
    assert [(m.position, m.participant1_ref, m.participant2_ref) for m in round1] == [(4, "D", "E")]
    r2m1, r2m2 = draw.matches["R2-M1"], draw.matches["R2-M2"]
    assert (r2m1.participant1_ref, r2m1.participant2_ref) == ("A", "B")
    assert (r2m2.participant1_ref, r2m2.participant2_ref) == ("C", None)


def test_random_seeding_is_a_permutation():
    participants = refs(8)
    draw = generate("ev1", participants, "single_elimination", "random", rng=random.Random(7))
    assert sorted(draw.participants) == sorted(participants)
    expected = list(participants)
    random.Random(7).shuffle(expected)
    assert draw.participants == expected


def test_manual_slot_assignment():
    draw = generate(
        "ev1", ["A", "B", "C"], "single_elimination", "manual",
        slot_assignment=["B", "C", "A", None],
    )
    assert (draw.matches["R1-M1"].participant1_ref, draw.matches["R1-M1"].participant2_ref) == ("B", "C")
    assert "R1-M2" not in draw.matches
    assert draw.matches["R2-M1"].participant2_ref == "A"
    assert draw.matches["R2-M1"].participant1_ref is None


def test_manual_without_slots_behaves_like_ranked():
    manual = generate("ev1", refs(6), "single_elimination", "manual")
    ranked = generate("ev1", refs(6), "single_elimination", "ranked")
    assert manual.matches == ranked.matches


@pytest.mark.parametrize(
    "slots",
    [
        ["A", "B", "C"],  # wrong length
        ["A", "B", "C", "C"],  # duplicate
        ["A", "B", None, None],  # participant missing
    ],
)
def test_invalid_slot_assignment(slots):
    with pytest.raises(InvalidConfiguration):
        generate("ev1", ["A", "B", "C"], "single_elimination", "manual", slot_assignment=slots)


def test_slot_assignment_rejects_empty_pairing():
    with pytest.raises(InvalidConfiguration):
        generate(
            "ev1", refs(5), "single_elimination", "manual",
            slot_assignment=[None, None, "P1", "P2", "P3", "P4", "P5", None],
        )


def test_slot_assignment_requires_manual_seeding():
    with pytest.raises(InvalidConfiguration):
        generate("ev1", ["A", "B"], "single_elimination", "ranked", slot_assignment=["A", "B"])


def test_empty_participants_rejected():
    with pytest.raises(InvalidConfiguration):
        generate("ev1", [], "single_elimination", "ranked")


@pytest.mark.parametrize(
    "participants, draw_type, seeding",
    [
        (["A"], "single_elimination", "ranked"),
        (["A", "A"], "single_elimination", "ranked"),
        (["A", ""], "round_robin", "ranked"),
        (["A", "B"], "swiss", "ranked"),
        (["A", "B"], "single_elimination", "by_height"),
    ],
)
def test_invalid_configuration(participants, draw_type, seeding):
    with pytest.raises(InvalidConfiguration):
        generate("ev1", participants, draw_type, seeding)


def test_double_elimination_unsupported():
    with pytest.raises(Unsupported):
        generate("ev1", refs(4), "double_elimination", "ranked")


@pytest.mark.parametrize("n", [2, 3, 4, 5, 6, 7])
def test_round_robin_covers_every_pair_once(n):
    draw = generate("ev1", refs(n), "round_robin", "ranked")
    pairs = {frozenset((m.participant1_ref, m.participant2_ref)) for m in draw.matches.values()}
    assert len(draw.matches) == n * (n - 1) // 2
    assert len(pairs) == len(draw.matches)
    assert draw.total_rounds == (n - 1 if n % 2 == 0 else n)
    for matches in draw.matches_by_round().values():
        playing = [ref for m in matches for ref in (m.participant1_ref, m.participant2_ref)]
        assert len(playing) == len(set(playing))
        assert [m.position for m in matches] == list(range(1, len(matches) + 1))


def test_round_robin_pairings_four():
    assert sorted((a, b) for _, a, b in round_robin_pairings(4)) == [
        (0, 1), (0, 2), (0, 3), (1, 2), (1, 3), (2, 3),
    ]


def test_group_stage_requires_group_size():
    with pytest.raises(Unsupported):
        generate("ev1", refs(8), "group_stage", "ranked")


def test_group_stage_deals_seeds_across_groups():
    draw = generate("ev1", refs(8), "group_stage", "ranked", group_size=4)
    assert draw.group_size == 4
    assert len(draw.matches) == 12
    groups = {}
    for m in draw.matches.values():
        groups.setdefault(m.group_label, set()).update({m.participant1_ref, m.participant2_ref})
    assert groups == {"A": {"P1", "P3", "P5", "P7"}, "B": {"P2", "P4", "P6", "P8"}}
    ids = [(m.round, m.position) for m in draw.matches.values()]
    assert len(ids) == len(set(ids))


@pytest.mark.parametrize("n, size", [(3, 2), (5, 1)])
def test_group_stage_rejects_singleton_groups(n, size):
    with pytest.raises(InvalidConfiguration):
        generate("ev1", refs(n), "group_stage", "ranked", group_size=size)


def test_round_labels():
    assert [round_label(r, 4) for r in (1, 2, 3, 4)] == ["Round 1", "Round 2", "Semi-Final", "Final"]
    assert round_label(1, 1) == "Final"


def test_round_robin_rounds_are_not_finals():
    draw = generate("ev1", refs(4), "round_robin", "ranked")
    assert label_for(draw, draw.total_rounds) == f"Round {draw.total_rounds}"
