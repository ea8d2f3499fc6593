"""
Value objects produced while evaluating promotions.
Nothing here is persisted; adjustments are written from ItemDiscount by the persister.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from apps.common.types import Cents, EligibilityErrorCode

if TYPE_CHECKING:
    from .action_models import PromotionAction


@dataclass(frozen=True)
class ItemDiscount:
    """A computed discount for one line item or shipment. amount is negative cents."""
    item: Any
    label: str
    source: PromotionAction
    amount: Cents


@dataclass(frozen=True)
class EligibilityError:
    code: EligibilityErrorCode
    message: str


@dataclass(frozen=True)
class EligibilityResult:
    """Outcome of one eligibility evaluation; eligible iff no errors were collected."""
    errors: tuple[EligibilityError, ...] = field(default_factory=tuple)

    @property
    def eligible(self) -> bool:
        return not self.errors

    def __bool__(self) -> bool:
        return self.eligible

    @property
    def error_codes(self) -> list[str]:
        return [error.code for error in self.errors]

    @property
    def first_message(self) -> str | None:
        return self.errors[0].message if self.errors else None

    def merge(self, other: EligibilityResult) -> EligibilityResult:
        return EligibilityResult(self.errors + other.errors)

    @classmethod
    def failure(cls, code: str, message: str) -> EligibilityResult:
        return cls((EligibilityError(code, message),))
