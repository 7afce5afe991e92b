from indowater.services.payment_gateways.doku import DokuGateway
from indowater.services.payment_gateways.midtrans import MidtransGateway

__all__ = ["DokuGateway", "MidtransGateway"]
