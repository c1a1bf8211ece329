"""Validation package."""

from budgetkeeper.validation.validator import PaymentValidator

__all__ = ["PaymentValidator"]
