import pytest

from gymscore.constants import NO_AGE_GROUP, NO_LEVEL
from gymscore.scoring import (
    aggregate_athletes,
    build_leaderboard,
    final_score,
    format_score,
    group_by_division,
    parse_score,
    rank,
)

from .factories import BB, FX_M, UB, VT, athlete, routine


class TestFinalScore:
    def test_difficulty_plus_execution_minus_deductions(self):
        assert final_score(6.0, 8.5, 1.2) == 13.3

    def test_never_negative(self):
        assert final_score(1.0, 1.0, 5.0) == 0.0

    def test_rounded_to_three_places(self):
        assert final_score(5.1234, 8.0, 0.0) == 13.123

    def test_format(self):
        assert format_score(13.3) == "13.300"
        assert format_score(0) == "0.000"
        assert format_score(None) == ""


class TestParseScore:
    @pytest.mark.parametrize("raw", ["", "   ", None, "abc", "nan", "inf", "-inf", float("inf")])
    def test_blank_or_garbage_is_zero(self, raw):
        assert parse_score(raw) == 0.0

    def test_parses_decimal(self):
        assert parse_score(" 8.5 ") == 8.5
        assert parse_score("9.1234") == 9.123

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            parse_score("-0.5")


class TestAggregate:
    def test_totals_and_event_count(self):
        jane = athlete(1, "Jane", "Smith")
        totals = aggregate_athletes([
            routine(jane, VT, 6.0, 8.5, 1.2),
            routine(jane, UB, 5.0, 7.8),
        ])
        assert len(totals) == 1
        assert totals[0].total_score == 26.1
        assert totals[0].event_count == 2
        assert totals[0].scores == {"VT": 13.3, "UB": 12.8}

    def test_first_seen_order(self):
        a = athlete(1, "Ann", "A")
        b = athlete(2, "Bea", "B")
        totals = aggregate_athletes([
            routine(b, VT, 5.0, 8.0),
            routine(a, VT, 5.0, 9.0),
            routine(b, BB, 5.0, 8.0),
        ])
        assert [t.athlete.id for t in totals] == [2, 1]
        assert totals[0].event_count == 2

    def test_empty(self):
        assert aggregate_athletes([]) == []
        assert build_leaderboard([]) == []


class TestRank:
    def test_descending_with_positional_ranks(self):
        a = athlete(1, "Ann", "A")
        b = athlete(2, "Bea", "B")
        c = athlete(3, "Cat", "C")
        totals = aggregate_athletes([
            routine(a, VT, 5.0, 8.0),
            routine(b, VT, 5.0, 8.0),
            routine(c, VT, 6.0, 9.0),
        ])
        ranked = rank(totals)
        assert [(s.athlete.id, s.rank) for s in ranked] == [(3, 1), (1, 2), (2, 3)]

    def test_ties_keep_input_order(self):
        a = athlete(1, "Ann", "A")
        b = athlete(2, "Bea", "B")
        totals = aggregate_athletes([routine(b, VT, 5.0, 8.0), routine(a, VT, 5.0, 8.0)])
        assert [s.athlete.id for s in rank(totals)] == [2, 1]


class TestDivisions:
    def test_levels_and_age_groups_in_display_order(self):
        routines = [
            routine(athlete(1, "A", "One", level="Level 10", age_group="12 years"), VT, 5.0, 8.0),
            routine(athlete(2, "B", "Two", level="Level 2", age_group="9 years"), VT, 5.0, 8.0),
            routine(athlete(3, "C", "Three", level="Custom"), VT, 5.0, 8.0),
            routine(athlete(4, "D", "Four"), VT, 5.0, 8.0),
            routine(athlete(5, "E", "Five", level="Level 2", age_group="7-8 years"), VT, 5.0, 8.0),
        ]
        grouped = group_by_division(aggregate_athletes(routines))
        assert list(grouped) == ["female"]
        assert list(grouped["female"]) == ["Level 2", "Level 10", "Custom", NO_LEVEL]
        assert list(grouped["female"]["Level 2"]) == ["7-8 years", "9 years"]
        assert list(grouped["female"]["Custom"]) == [NO_AGE_GROUP]

    def test_genders_ranked_separately(self):
        m = athlete(1, "Max", "M", gender="male", level="Level 5")
        f = athlete(2, "Fay", "F", level="Level 5")
        groups = build_leaderboard([routine(m, FX_M, 6.0, 9.0), routine(f, VT, 4.0, 8.0)])
        assert [(g.gender, g.level) for g in groups] == [("male", "Level 5"), ("female", "Level 5")]
        assert all(g.athletes[0].rank == 1 for g in groups)

    def test_rank_within_bucket(self):
        low = athlete(1, "Low", "L", level="Level 4", age_group="10 years")
        high = athlete(2, "High", "H", level="Level 4", age_group="10 years")
        other = athlete(3, "Other", "O", level="Level 4", age_group="11 years")
        groups = build_leaderboard([
            routine(low, VT, 4.0, 7.0),
            routine(high, VT, 5.0, 9.0),
            routine(other, VT, 3.0, 6.0),
        ])
        assert [g.age_group for g in groups] == ["10 years", "11 years"]
        assert [(s.name, s.rank) for s in groups[0].athletes] == [("High H", 1), ("Low L", 2)]
        assert groups[1].athletes[0].rank == 1
