from .base import AuditMixin, SoftDeleteMixin, TenantScopedMixin
from .tenancy import Organization, Membership
from .users import ApplicationUser
from .inventory import Category, Product, Warehouse, InventoryMovement
from .orders import Customer, Supplier, Order, OrderItem
from .expenses import ExpenseCategory, Expense
from .billing import Subscription, WebhookEvent

__all__ = [
    'AuditMixin', 'SoftDeleteMixin', 'TenantScopedMixin',
    'Organization', 'Membership', 'ApplicationUser',
    'Category', 'Product', 'Warehouse', 'InventoryMovement',
    'Customer', 'Supplier', 'Order', 'OrderItem',
    'ExpenseCategory', 'Expense',
    'Subscription', 'WebhookEvent',
]
