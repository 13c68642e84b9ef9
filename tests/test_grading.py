import pytest

from services import grading


def sub(credits, grade, **extra):
    return dict({"code": "X", "name": "X", "credits": credits, "grade": grade}, **extra)


@pytest.mark.parametrize("grade,points", [
    ("AA", 10), ("AB", 9), ("BB", 8), ("BC", 7), ("CC", 6),
    ("CD", 5), ("DD", 4), ("FF", 0), ("II", 0),
])
def test_grade_point_table(grade, points):
    assert grading.grade_point(grade) == points


def test_unknown_grade_is_zero_points():
    assert grading.grade_point("ZZ") == 0
    assert grading.grade_point(None) == 0


def test_backlog_only_for_ff_and_ii():
    backlog = {g for g in grading.GRADE_POINTS if grading.is_backlog(g)}
    assert backlog == {"FF", "II"}


def test_spi_includes_backlog_credits_in_denominator():
    assert grading.compute_spi([sub(4, "AA"), sub(3, "FF")]) == 5.71


def test_spi_zero_credits_is_zero():
    assert grading.compute_spi([]) == 0.0
    assert grading.compute_spi([sub(0, "AA")]) == 0.0


def test_cpi_without_history_equals_spi():
    subjects = [sub(4, "AA"), sub(4, "BC")]
    assert grading.compute_cpi(0, 0, subjects) == grading.compute_spi(subjects) == 8.5


def test_cpi_weights_prior_credits_and_can_drop():
    # 20 credits at 9.0 followed by 10 credits at 4.0
    cpi = grading.compute_cpi(9.0, 20, [sub(10, "DD")])
    assert cpi == round((9.0 * 20 + 40) / 30, 2)
    assert cpi < 9.0


def test_credit_totals_and_result():
    subjects = [sub(4, "AA"), sub(3, "FF"), sub(2, "II")]
    assert grading.total_credits(subjects) == 9
    assert grading.earned_credits(subjects) == 4
    assert grading.earned_credits(subjects) <= grading.total_credits(subjects)
    assert grading.result_status(subjects) == grading.FAIL
    assert grading.result_status([sub(4, "DD")]) == grading.PASS


def test_explicit_backlog_flag_overrides_grade():
    subjects = [sub(4, "CC", isBacklog=True), sub(3, "AA")]
    assert grading.earned_credits(subjects) == 3
    assert grading.result_status(subjects) == grading.FAIL


def test_summarize_keeps_supplied_values_rounded():
    derived = grading.summarize([sub(4, "AA"), sub(3, "FF")], spi=6.123, cpi=7.4567)
    assert derived["spi"] == 6.12
    assert derived["cpi"] == 7.46
    assert derived["total_credits"] == 7
    assert derived["earned_credits"] == 4
    assert derived["result"] == grading.FAIL
