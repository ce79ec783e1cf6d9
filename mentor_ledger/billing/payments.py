"""
Payment notification processing (Cryptomus webhooks).

A notification is trusted only after its signature verifies:

    sign = md5(base64(json(payload without "sign", keys sorted, compact)) + api_key)

Verification happens before anything touches the database, so a forged
notification never reaches the idempotency records or the ledger.
Confirmed payments are applied through ``UsageLedger.apply_purchase`` keyed
by the processor's payment ``uuid``; repeated deliveries of the same payment
are acknowledged without effect.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from mentor_ledger.core.config import Settings
from mentor_ledger.core.logging_config import get_logger
from mentor_ledger.core.models.domain import PaymentOutcome, PaymentResult, PaymentStatus
from mentor_ledger.core.monitoring import log_payment_event

from .errors import InvalidSignature, PaymentsNotConfigured, UnknownAccount
from .ledger import UsageLedger
from .packages import TOKEN_PACKAGES, TokenPackage, get_package, parse_order_id

logger = get_logger(__name__)

RawPayload = Union[bytes, str, Mapping[str, Any]]

SIGNATURE_FIELD = "sign"

SUCCESS_STATUSES = frozenset({PaymentStatus.paid, PaymentStatus.paid_over})
PENDING_STATUSES = frozenset({PaymentStatus.process, PaymentStatus.confirm_check, PaymentStatus.confirm})
FAILED_STATUSES = frozenset({PaymentStatus.cancel, PaymentStatus.fail, PaymentStatus.failed, PaymentStatus.system_fail})


class CryptomusNotification(BaseModel):
    """Fields of a payment notification the ledger relies on."""

    model_config = ConfigDict(extra="allow")

    uuid: str
    order_id: str
    status: str
    amount: Optional[str] = None
    currency: Optional[str] = None
    payer_currency: Optional[str] = None
    payer_amount: Optional[str] = None
    txid: Optional[str] = None


def decode_payload(raw_payload: RawPayload) -> Dict[str, Any]:
    """Parse a raw notification body into a dict.

    Raises:
        InvalidSignature: the body is not a JSON object, so it cannot be verified
    """
    if isinstance(raw_payload, Mapping):
        return dict(raw_payload)
    try:
        payload = json.loads(raw_payload)
    except (TypeError, ValueError) as exc:
        raise InvalidSignature("payload is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise InvalidSignature("payload is not a JSON object")
    return payload


def canonical_payload(payload: Mapping[str, Any]) -> bytes:
    """Key-sorted compact JSON of every field except the signature."""
    unsigned = {key: value for key, value in payload.items() if key != SIGNATURE_FIELD}
    return json.dumps(unsigned, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def compute_signature(payload: Mapping[str, Any], api_key: str) -> str:
    encoded = base64.b64encode(canonical_payload(payload))
    return hashlib.md5(encoded + api_key.encode("utf-8")).hexdigest()


def verify_signature(payload: Mapping[str, Any], signature: Optional[str], api_key: str) -> None:
    """
    Raises:
        InvalidSignature: the signature is missing or does not match
    """
    if not isinstance(signature, str) or not signature:
        raise InvalidSignature("missing signature")
    expected = compute_signature(payload, api_key)
    if not hmac.compare_digest(expected, signature.strip().lower()):
        raise InvalidSignature()


class PaymentProcessor:
    """Turns verified payment notifications into ledger purchases."""

    def __init__(
        self,
        ledger: UsageLedger,
        api_key: Optional[str],
        *,
        subscription_days: int = 30,
        packages: Mapping[str, TokenPackage] = TOKEN_PACKAGES,
    ) -> None:
        self.ledger = ledger
        self._api_key = api_key
        self.subscription_days = subscription_days
        self.packages = packages

    @classmethod
    def from_settings(cls, ledger: UsageLedger, settings: Settings) -> "PaymentProcessor":
        payments = settings.payments
        return cls(ledger, payments.api_key, subscription_days=payments.subscription_days)

    async def apply_payment_notification(
        self, raw_payload: RawPayload, signature: Optional[str] = None
    ) -> PaymentResult:
        """Verify and apply one payment notification.

        Args:
            raw_payload: Notification body as received (bytes, str or parsed mapping)
            signature: Signature delivered with the body; defaults to its ``sign`` field

        Returns:
            The outcome; ``invalid_signature`` results have touched nothing

        Raises:
            PaymentsNotConfigured: no shared secret to verify with
            StorageError: the ledger could not apply a verified payment; retry the same notification
        """
        if not self._api_key:
            raise PaymentsNotConfigured()

        try:
            payload = decode_payload(raw_payload)
            verify_signature(payload, signature or payload.get(SIGNATURE_FIELD), self._api_key)
        except InvalidSignature as exc:
            logger.warning(f"SECURITY: rejected payment notification ({exc.reason})")
            return PaymentResult(outcome=PaymentOutcome.invalid_signature, reason=exc.reason)

        try:
            notification = CryptomusNotification.model_validate(payload)
        except ValidationError as exc:
            logger.warning(f"Verified payment notification is malformed: {exc.error_count()} errors")
            return PaymentResult(outcome=PaymentOutcome.rejected, reason="malformed notification")

        result = await self._dispatch(notification)
        logger.info(
            f"Payment {notification.uuid} status={notification.status} order={notification.order_id} "
            f"-> {result.outcome.value}"
        )
        log_payment_event(notification.uuid, notification.status, result.outcome.value, result.user_id)
        return result

    async def _dispatch(self, notification: CryptomusNotification) -> PaymentResult:
        try:
            status = PaymentStatus(notification.status.strip().lower())
        except ValueError:
            status = None

        if status in SUCCESS_STATUSES:
            return await self._apply(notification)
        if status in PENDING_STATUSES:
            return PaymentResult(outcome=PaymentOutcome.pending, external_reference=notification.uuid)
        if status in FAILED_STATUSES:
            return PaymentResult(
                outcome=PaymentOutcome.rejected,
                reason=f"payment {notification.status}",
                external_reference=notification.uuid,
            )
        return PaymentResult(
            outcome=PaymentOutcome.ignored,
            reason=f"informational status {notification.status}",
            external_reference=notification.uuid,
        )

    async def _apply(self, notification: CryptomusNotification) -> PaymentResult:
        parsed = parse_order_id(notification.order_id)
        if parsed is None:
            logger.warning(f"Paid notification {notification.uuid} has unrecognized order id {notification.order_id}")
            return PaymentResult(
                outcome=PaymentOutcome.rejected,
                reason="unrecognized order id",
                external_reference=notification.uuid,
            )
        user_id, package_key = parsed
        package = get_package(package_key, self.packages)
        if package is None:
            logger.warning(f"Paid notification {notification.uuid} references unknown package {package_key}")
            return PaymentResult(
                outcome=PaymentOutcome.rejected,
                reason=f"unknown package {package_key}",
                external_reference=notification.uuid,
                user_id=user_id,
            )

        try:
            purchase = await self.ledger.apply_purchase(
                user_id,
                package.units,
                package.price_cents,
                external_reference=notification.uuid,
                days=self.subscription_days,
                description=f"{package.label} via Cryptomus order {notification.order_id}",
            )
        except UnknownAccount:
            logger.warning(f"Paid notification {notification.uuid} for user_id={user_id} without a billing account")
            return PaymentResult(
                outcome=PaymentOutcome.rejected,
                reason="unknown account",
                external_reference=notification.uuid,
                user_id=user_id,
                package=package.key,
            )

        return PaymentResult(
            outcome=PaymentOutcome.applied,
            external_reference=notification.uuid,
            user_id=user_id,
            package=package.key,
            newly_applied=purchase.applied,
            paid_until=purchase.paid_until,
        )
