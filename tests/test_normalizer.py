"""Tests for number coercion, unit conversion and workout normalization."""
import pytest

from workout_parse_api.models import ParsedExercise, ParsedSet, ParsedWorkout
from workout_parse_api.services.normalizer import (
    KG_TO_LB,
    coerce_number,
    has_set_data,
    kg_to_lb,
    lb_to_kg,
    normalize_exercise,
    normalize_reps,
    normalize_rpe,
    normalize_weight_to_kg,
    normalize_workout,
)


class TestCoerceNumber:
    """Locale-robust coercion of typed values."""

    @pytest.mark.parametrize(
        "raw",
        ["7.5", "7,5", "7·5", "7٫5", "7，5", "7．5", " 7.5 kg "],
    )
    def test_decimal_separator_variants(self, raw):
        assert coerce_number(raw) == pytest.approx(7.5)

    def test_multiple_dots_fold_into_fraction(self):
        assert coerce_number("7.5.2") == pytest.approx(7.52)

    def test_numbers_pass_through(self):
        assert coerce_number(10) == 10.0
        assert coerce_number(62.5) == 62.5

    @pytest.mark.parametrize("raw", [None, "", "   ", "abc", "-", ".", float("nan"), float("inf"), True])
    def test_uncoercible_values_are_none(self, raw):
        assert coerce_number(raw) is None

    def test_negative_values_survive(self):
        assert coerce_number("-5") == -5.0


class TestUnitConversion:
    def test_constant(self):
        assert KG_TO_LB == 2.20462

    def test_kg_lb_round_trip(self):
        for value in (0.5, 20.0, 61.23, 142.5, 300.0):
            assert lb_to_kg(kg_to_lb(value)) == pytest.approx(value, abs=0.01)

    def test_lb_weight_normalized_to_kg(self):
        assert normalize_weight_to_kg("135", "lb") == pytest.approx(61.235, abs=0.01)

    def test_kg_weight_kept(self):
        assert normalize_weight_to_kg("100,5", "kg") == pytest.approx(100.5)

    def test_missing_weight_stays_none(self):
        assert normalize_weight_to_kg(None, "lb") is None


class TestRepsAndRpe:
    def test_reps_must_be_at_least_one(self):
        assert normalize_reps(0) is None
        assert normalize_reps("-3") is None
        assert normalize_reps("8") == 8

    def test_fractional_reps_are_rounded(self):
        assert normalize_reps(7.6) == 8
        assert normalize_reps("0.4") is None

    def test_rpe_must_not_be_negative(self):
        assert normalize_rpe("8,5") == pytest.approx(8.5)
        assert normalize_rpe(-1) is None


class TestHasSetData:
    @pytest.mark.parametrize(
        "weight,reps,expected",
        [
            (None, None, False),
            ("", "  ", False),
            (0, 0, False),
            ("60", None, True),
            (None, 5, True),
            ("0", None, True),
        ],
    )
    def test_presence(self, weight, reps, expected):
        assert has_set_data(weight, reps) is expected


class TestNormalizeWorkout:
    def _workout(self, sets):
        return ParsedWorkout(
            is_workout_related=True,
            exercises=[ParsedExercise(name="  Bench Press ", order_index=0, sets=sets)],
        )

    def test_sets_converted_and_numbered(self):
        workout = self._workout(
            [
                ParsedSet(reps=8, weight=135),
                ParsedSet(reps="6", weight="155"),
            ]
        )
        result = normalize_workout(workout, "lb")

        exercise = result.exercises[0]
        assert exercise.name == "Bench Press"
        assert [s.set_number for s in exercise.sets] == [1, 2]
        assert exercise.sets[0].weight == pytest.approx(61.2, abs=0.1)
        assert exercise.sets[1].weight == pytest.approx(70.3, abs=0.1)
        assert [s.reps for s in exercise.sets] == [8, 6]
        assert exercise.has_rep_gaps is False

    def test_sets_without_reps_or_weight_are_dropped(self):
        workout = self._workout(
            [
                ParsedSet(reps=None, weight=None),
                ParsedSet(reps=0, weight="abc"),
                ParsedSet(reps=10, weight=None),
            ]
        )
        result = normalize_workout(workout, "kg")
        assert len(result.exercises[0].sets) == 1
        assert result.exercises[0].sets[0].reps == 10

    def test_rep_gaps_flagged(self):
        workout = self._workout([ParsedSet(reps=None, weight=20), ParsedSet(reps=10, weight=40)])
        result = normalize_workout(workout, "kg")
        assert result.exercises[0].has_rep_gaps is True

    def test_warmup_flag_carried_over(self):
        workout = self._workout([ParsedSet(reps=10, weight=40, is_warmup=True), ParsedSet(reps=5, weight=100)])
        sets = normalize_workout(workout, "kg").exercises[0].sets
        assert [s.is_warmup for s in sets] == [True, False]

    def test_order_index_preserved(self):
        exercise = ParsedExercise(name="Row", order_index=3, sets=[ParsedSet(reps=8, weight=50)])
        assert normalize_exercise(exercise, "kg").order_index == 3

    def test_exercise_without_usable_sets_is_dropped(self):
        workout = ParsedWorkout(
            is_workout_related=True,
            exercises=[
                ParsedExercise(name="Squat", order_index=0, sets=[ParsedSet(reps=None, weight="abc")]),
                ParsedExercise(name="Row", order_index=1, sets=[ParsedSet(reps=8, weight=50)]),
            ],
        )
        result = normalize_workout(workout, "kg")
        assert [ex.name for ex in result.exercises] == ["Row"]
        assert result.exercises[0].order_index == 1
