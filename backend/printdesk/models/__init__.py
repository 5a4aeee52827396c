from .orders import Order
from .audit import AuditEntry
from .settings import SystemSetting
from .auth import AdminUser, SessionToken

__all__ = [
    'Order',
    'AuditEntry',
    'SystemSetting',
    'AdminUser', 'SessionToken',
]
