from __future__ import annotations

from datetime import date

from constructrs.reports.naming import (
    build_report_filename,
    initials_from_author,
    inspector_initials,
    sanitize,
)


TODAY = date(2024, 3, 7)


def test_filename_follows_date_job_type_initials_pattern() -> None:
    name = build_report_filename("Site A", None, "safety", today=TODAY)
    assert name == "2024.03.07_SiteA_safety_XX.pdf"


def test_filename_is_deterministic_for_identical_inputs() -> None:
    first = build_report_filename("Bridge #4", "Ignored", "Structural", "Ada", "Lovelace", today=TODAY)
    second = build_report_filename("Bridge #4", "Ignored", "Structural", "Ada", "Lovelace", today=TODAY)
    assert first == second == "2024.03.07_Bridge4_Structural_AL.pdf"


def test_filename_changes_with_the_day() -> None:
    a = build_report_filename("Site", None, "safety", today=date(2024, 3, 7))
    b = build_report_filename("Site", None, "safety", today=date(2024, 3, 8))
    assert a != b


def test_job_falls_back_to_project_name_then_unknown() -> None:
    assert "_NorthTower_" in build_report_filename(None, "North Tower", "safety", today=TODAY)
    assert "_Unknown_" in build_report_filename(None, None, "safety", today=TODAY)


def test_type_falls_back_to_general() -> None:
    assert build_report_filename("Job", None, None, today=TODAY) == "2024.03.07_Job_General_XX.pdf"


def test_sanitize_strips_and_truncates() -> None:
    assert sanitize("a-b c/d!", 30) == "abcd"
    assert len(sanitize("x" * 50, 30)) == 30
    long_type = build_report_filename("Job", None, "t" * 40, today=TODAY)
    assert long_type == f"2024.03.07_Job_{'t' * 20}_XX.pdf"


def test_initials_prefer_inspector_then_author() -> None:
    assert inspector_initials("jane", "doe", "Someone Else") == "JD"
    assert inspector_initials(None, None, "mary ann smith") == "MS"
    assert inspector_initials("Jane", None, None) == "XX"


def test_single_word_author_uses_two_letters_with_padding() -> None:
    assert initials_from_author("Cher") == "CH"
    assert initials_from_author("Q") == "QX"
    assert initials_from_author("   ") is None
