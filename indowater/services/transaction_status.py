"""Mapping from gateway status vocabularies to ``TransactionStatus``.

Unrecognised statuses map to ``pending`` so a notification is never dropped;
a warning is logged so new provider states show up in the logs.
"""

import logging

from indowater.models.payment import PaymentGatewayType, TransactionStatus

logger = logging.getLogger(__name__)

MIDTRANS_STATUS_MAP: dict[str, TransactionStatus] = {
    "capture": TransactionStatus.SUCCESS,
    "settlement": TransactionStatus.SUCCESS,
    "pending": TransactionStatus.PENDING,
    "deny": TransactionStatus.FAILED,
    "cancel": TransactionStatus.FAILED,
    "expire": TransactionStatus.EXPIRED,
    "refund": TransactionStatus.REFUNDED,
}

DOKU_STATUS_MAP: dict[str, TransactionStatus] = {
    "SUCCESS": TransactionStatus.SUCCESS,
    "PENDING": TransactionStatus.PENDING,
    "FAILED": TransactionStatus.FAILED,
    "CANCELLED": TransactionStatus.FAILED,
    "EXPIRED": TransactionStatus.EXPIRED,
    "REFUNDED": TransactionStatus.REFUNDED,
}


def _lookup(
    table: dict[str, TransactionStatus], gateway: str, status: object
) -> TransactionStatus:
    if isinstance(status, str) and status in table:
        return table[status]
    logger.warning("Unrecognised %s status %r, treating as pending", gateway, status)
    return TransactionStatus.PENDING


def map_midtrans_status(status: object, fraud_status: object = None) -> TransactionStatus:
    """Map a Midtrans ``transaction_status``.

    A ``capture`` flagged ``challenge`` by fraud detection stays pending until
    the merchant accepts it.
    """
    if status == "capture" and fraud_status == "challenge":
        return TransactionStatus.PENDING
    return _lookup(MIDTRANS_STATUS_MAP, "midtrans", status)


def map_doku_status(status: object) -> TransactionStatus:
    """Map a DOKU ``transaction.status``."""
    return _lookup(DOKU_STATUS_MAP, "doku", status)


def map_gateway_status(gateway: PaymentGatewayType | str, status: object) -> TransactionStatus:
    """Map ``status`` using the table for ``gateway``."""
    gateway = PaymentGatewayType(gateway)
    if gateway is PaymentGatewayType.MIDTRANS:
        return map_midtrans_status(status)
    return map_doku_status(status)
