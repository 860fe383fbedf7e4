from __future__ import annotations

import pytest

from progress_service.models.access import (
    CodeType,
    UserTier,
    classify_code,
    should_show_paywall,
)


@pytest.mark.parametrize(
    ("code", "expected"),
    [
        ("C12345", CodeType.CLASS_ACCESS),
        ("p54321", CodeType.PREMIUM),
        (" F00001 ", CodeType.FRIEND),
        ("I99999", CodeType.INDIVIDUAL),
    ],
)
def test_classify_code(code: str, expected: CodeType) -> None:
    assert classify_code(code) is expected


@pytest.mark.parametrize("code", ["C1234", "C123456", "X12345", "CABCDE", "", "C１２３４５"])
def test_classify_code_rejects_malformed(code: str) -> None:
    assert classify_code(code) is None


def test_code_types_grant_tiers() -> None:
    assert CodeType.PREMIUM.rule.grants is UserTier.PREMIUM
    assert CodeType.CLASS_ACCESS.rule.grants is UserTier.BASIC_PAID
    assert CodeType.CLASS_ACCESS.rule.display_name == "Class Access"


# ---- paywall ----


def test_paywall_shown_to_free_users_at_threshold() -> None:
    assert should_show_paywall(50, UserTier.FREE, has_class_access=False, threshold=50)
    assert not should_show_paywall(49, UserTier.FREE, has_class_access=False, threshold=50)


def test_paywall_never_shown_with_class_access_or_paid_tier() -> None:
    assert not should_show_paywall(500, UserTier.FREE, has_class_access=True, threshold=50)
    assert not should_show_paywall(500, UserTier.BASIC_PAID, has_class_access=False, threshold=50)
    assert not should_show_paywall(500, UserTier.PREMIUM, has_class_access=False, threshold=50)
