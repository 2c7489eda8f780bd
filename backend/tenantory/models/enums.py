from __future__ import annotations

from enum import Enum


class ProductStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    DISCONTINUED = "Discontinued"
    OUT_OF_STOCK = "OutOfStock"


class OrderType(str, Enum):
    PURCHASE = "Purchase"
    SALE = "Sale"
    TRANSFER = "Transfer"
    RETURN = "Return"
    ADJUSTMENT = "Adjustment"


class OrderStatus(str, Enum):
    DRAFT = "Draft"
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    RETURNED = "Returned"


TERMINAL_ORDER_STATUSES = {OrderStatus.COMPLETED.value, OrderStatus.CANCELLED.value, OrderStatus.RETURNED.value}


class MovementType(str, Enum):
    STOCK_IN = "StockIn"
    STOCK_OUT = "StockOut"
    TRANSFER = "Transfer"
    ADJUSTMENT = "Adjustment"
    RETURN = "Return"
    DAMAGE = "Damage"
    LOST = "Lost"


# Movement types that take units out of stock
OUTBOUND_MOVEMENTS = {
    MovementType.STOCK_OUT.value,
    MovementType.DAMAGE.value,
    MovementType.LOST.value,
}


class SubscriptionStatus(str, Enum):
    TRIAL = "Trial"
    ACTIVE = "Active"
    PAST_DUE = "PastDue"
    CANCELLED = "Cancelled"
    SUSPENDED = "Suspended"


class MembershipRole(str, Enum):
    OWNER = "Owner"
    ADMIN = "Admin"
    MANAGER = "Manager"
    USER = "User"
    VIEWER = "Viewer"


class LimitType(str, Enum):
    USERS = "Users"
    PRODUCTS = "Products"
    ORDERS = "Orders"
    WAREHOUSES = "Warehouses"
