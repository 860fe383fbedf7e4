"""Access tiers and redeemable code types.

Only the classification of codes lives here; redemption bookkeeping
belongs to the paywall, which reads the derived XP and tier from this
service and decides what to unlock.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


class UserTier(str, enum.Enum):
    FREE = "free"
    BASIC_PAID = "basic_paid"
    PREMIUM = "premium"

    @property
    def display_name(self) -> str:
        return {
            UserTier.FREE: "Free",
            UserTier.BASIC_PAID: "Basic",
            UserTier.PREMIUM: "Premium",
        }[self]


@dataclass(frozen=True, slots=True)
class CodeRule:
    prefix: str
    digits: int
    grants: UserTier
    display_name: str

    def matches(self, code: str) -> bool:
        body = code[len(self.prefix) :]
        return (
            code.startswith(self.prefix)
            and len(body) == self.digits
            and body.isascii()
            and body.isdigit()
        )


class CodeType(enum.Enum):
    CLASS_ACCESS = CodeRule("C", 5, UserTier.BASIC_PAID, "Class Access")
    PREMIUM = CodeRule("P", 5, UserTier.PREMIUM, "Premium Access")
    FRIEND = CodeRule("F", 5, UserTier.BASIC_PAID, "Friend Referral")
    INDIVIDUAL = CodeRule("I", 5, UserTier.BASIC_PAID, "Individual Purchase")

    @property
    def rule(self) -> CodeRule:
        return self.value


def classify_code(code: str) -> CodeType | None:
    """Return the code type whose rule accepts ``code``, or None."""
    normalized = code.strip().upper()
    for code_type in CodeType:
        if code_type.rule.matches(normalized):
            return code_type
    return None


def should_show_paywall(
    total_xp: int, tier: UserTier, *, has_class_access: bool, threshold: int
) -> bool:
    """Free users without a class link hit the paywall once they reach the XP threshold."""
    if has_class_access or tier is not UserTier.FREE:
        return False
    return total_xp >= threshold
