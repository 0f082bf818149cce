"""Heuristic transaction flag detection.

Flags annotate a transaction for downstream reporting (BNPL purchases,
transfers between own accounts, card payments, installment-plan credits).
They never change the category decision.
"""

from __future__ import annotations

import re
from decimal import Decimal

from batchflow.core.constants import ExclusionReason
from batchflow.schemas.flags import TransactionFlags

# Ordering matters: the first provider that matches is reported.
_BNPL_PROVIDERS: list[tuple[str, re.Pattern[str]]] = [
    ("affirm", re.compile(r"AFFIRM", re.I)),
    ("klarna", re.compile(r"KLARNA", re.I)),
    ("afterpay", re.compile(r"AFTERPAY", re.I)),
    ("apple_pay_later", re.compile(r"APPLE\s*PAY\s*LATER", re.I)),
    ("sezzle", re.compile(r"SEZZLE", re.I)),
    ("zip", re.compile(r"ZIP\s*PAY", re.I)),
    ("quadpay", re.compile(r"QUADPAY", re.I)),
    ("splitit", re.compile(r"SPLITIT", re.I)),
]

_INTERNAL_TRANSFER: list[re.Pattern[str]] = [
    re.compile(r"^TRANSFER\s*TO", re.I),
    re.compile(r"^TRANSFER\s*FROM", re.I),
    re.compile(r"^PAYMENT\s*TO.*CREDIT\s*CARD", re.I),
    re.compile(r"^E-TRANSFER", re.I),
    re.compile(r"^INTERAC\s*E-TRANSFER", re.I),
    re.compile(r"^WIRE\s*TRANSFER", re.I),
    re.compile(r"^ACH\s*TRANSFER", re.I),
    re.compile(r"^ZELLE", re.I),
]

_CARD_PAYMENT: list[re.Pattern[str]] = [
    re.compile(r"CREDIT\s*CARD\s*PAYMENT", re.I),
    re.compile(r"^PAYMENT.*THANK\s*YOU", re.I),
    re.compile(r"^AUTOPAY", re.I),
    re.compile(r"^AUTOMATIC\s*PAYMENT", re.I),
]

_INSTALLMENT_CREDIT: list[re.Pattern[str]] = [
    re.compile(r"INSTALLMENT\s*PLAN", re.I),
    re.compile(r"PLAN\s*IT", re.I),
    re.compile(r"PAY\s*OVER\s*TIME", re.I),
]

DETECTION_METHOD = "pattern"


def detect_bnpl_provider(merchant_name: str | None) -> str | None:
    if not merchant_name:
        return None
    for provider, pattern in _BNPL_PROVIDERS:
        if pattern.search(merchant_name):
            return provider
    return None


def is_internal_transfer(text: str | None) -> bool:
    return bool(text) and any(p.search(text.strip()) for p in _INTERNAL_TRANSFER)


def is_credit_card_payment(text: str | None) -> bool:
    return bool(text) and any(p.search(text.strip()) for p in _CARD_PAYMENT)


def is_installment_credit(
    merchant_name: str | None, description: str | None, amount: Decimal | None
) -> bool:
    """Installment-plan conversions show up as credits (positive amounts)."""
    if amount is None or amount <= 0:
        return False
    text = f"{merchant_name or ''} {description or ''}"
    return any(p.search(text) for p in _INSTALLMENT_CREDIT)


def detect_flags(
    merchant_name: str | None,
    description: str | None,
    amount: Decimal | None,
) -> TransactionFlags:
    """Annotate a transaction. Returns empty flags when nothing matched."""
    flags = TransactionFlags()
    texts = [t for t in (description, merchant_name) if t]

    provider = detect_bnpl_provider(merchant_name) or detect_bnpl_provider(description)
    if provider:
        flags.is_bnpl_purchase = True
        flags.bnpl_provider = provider

    if any(is_internal_transfer(t) for t in texts):
        flags.is_internal_transfer = True
        flags.is_excluded_from_totals = True
        flags.exclusion_reason = ExclusionReason.INTERNAL_TRANSFER
    elif any(is_credit_card_payment(t) for t in texts):
        flags.is_credit_card_payment = True
        flags.is_excluded_from_totals = True
        flags.exclusion_reason = ExclusionReason.CREDIT_CARD_PAYMENT
    elif is_installment_credit(merchant_name, description, amount):
        flags.is_installment_credit = True
        flags.is_excluded_from_totals = True
        flags.exclusion_reason = ExclusionReason.INSTALLMENT_PLAN_CREDIT

    if flags.to_storage():
        flags.auto_detected = True
        flags.detection_method = DETECTION_METHOD
    return flags
