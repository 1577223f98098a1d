"""Validation guards: independent plausibility checks over drafts."""

from loreforge.guards.balance import BalanceGuard
from loreforge.guards.base import Guard, GuardRegistry, GuardResult, run_guard
from loreforge.guards.canon import CanonGuard
from loreforge.guards.coherence import CoherenceGuard
from loreforge.guards.physics import PhysicsGuard
from loreforge.guards.rules import RulesGuard
from loreforge.guards.schema import DraftValidationError, ValidationErrorDetail, validate_draft

__all__ = [
    "BalanceGuard",
    "CanonGuard",
    "CoherenceGuard",
    "DraftValidationError",
    "Guard",
    "GuardRegistry",
    "GuardResult",
    "PhysicsGuard",
    "RulesGuard",
    "ValidationErrorDetail",
    "run_guard",
    "validate_draft",
]
