"""Obligations module: payables, receivables and their installments."""

from settlement_modules.obligations.models import Installment, Obligation, Tag

__all__ = ["Installment", "Obligation", "Tag"]
