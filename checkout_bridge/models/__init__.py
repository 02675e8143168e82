from checkout_bridge.models.enums import MetadataKey, PaymentStatus, RemoteObjectKind, SessionMode
from checkout_bridge.models.order import AuditLog, Base, Order, OrderLine

__all__ = [
    "Base",
    "Order",
    "OrderLine",
    "AuditLog",
    "MetadataKey",
    "PaymentStatus",
    "RemoteObjectKind",
    "SessionMode",
]
