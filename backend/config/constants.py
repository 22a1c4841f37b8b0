# backend/config/constants.py

from decimal import Decimal

from config.env import SHIPPING_FEE as _SHIPPING_FEE, TAX_RATE as _TAX_RATE

# -----------------------------
# ROLES
# -----------------------------

ROLE_BUYER = "buyer"
ROLE_SELLER = "seller"
ROLE_ADMIN = "admin"

USER_ROLES = {ROLE_BUYER, ROLE_SELLER, ROLE_ADMIN}
ASSIGNABLE_ROLES = {ROLE_BUYER, ROLE_SELLER}   # admin is never a target

# -----------------------------
# PRODUCTS
# -----------------------------

PRODUCT_ACTIVE = "active"
PRODUCT_INACTIVE = "inactive"
PRODUCT_REMOVED = "removed"

PRODUCT_STATUSES = {PRODUCT_ACTIVE, PRODUCT_INACTIVE, PRODUCT_REMOVED}

PRODUCT_CONDITIONS = {"new", "like-new", "good", "fair", "poor"}

PRODUCT_CATEGORIES = {
    "electronics",
    "furniture",
    "clothing",
    "books",
    "toys",
    "sports",
    "automotive",
    "other",
}

# -----------------------------
# ORDERS
# -----------------------------

ORDER_PENDING_PAYMENT = "pending_payment"
ORDER_PENDING_DELIVERY = "pending_delivery"
ORDER_SHIPPED = "shipped"
ORDER_DELIVERED = "delivered"
ORDER_CANCELLED = "cancelled"
ORDER_RETURNED = "returned"

ORDER_STATUSES = {
    ORDER_PENDING_PAYMENT,
    ORDER_PENDING_DELIVERY,
    ORDER_SHIPPED,
    ORDER_DELIVERED,
    ORDER_CANCELLED,
    ORDER_RETURNED,
}

# statuses that still hold the product
LIVE_ORDER_STATUSES = ORDER_STATUSES - {ORDER_CANCELLED, ORDER_RETURNED}

PAYMENT_CREDIT_CARD = "credit_card"
PAYMENT_COD = "cod"
PAYMENT_BANK_TRANSFER = "bank_transfer"

PAYMENT_METHODS = {PAYMENT_CREDIT_CARD, PAYMENT_COD, PAYMENT_BANK_TRANSFER}
MANUAL_PAYMENT_METHODS = {PAYMENT_COD, PAYMENT_BANK_TRANSFER}

PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_FAILED = "failed"
PAYMENT_REFUNDED = "refunded"

PAYMENT_STATUSES = {PAYMENT_PENDING, PAYMENT_PAID, PAYMENT_FAILED, PAYMENT_REFUNDED}

ADDRESS_PLACEHOLDER = "Address not provided"

# -----------------------------
# PRICING (snapshotted per order)
# -----------------------------

SHIPPING_FEE = Decimal(_SHIPPING_FEE)
TAX_RATE = Decimal(_TAX_RATE)

# -----------------------------
# REPORTS
# -----------------------------

REPORT_TARGET_PRODUCT = "product"
REPORT_TARGET_USER = "user"
REPORT_TARGET_MESSAGE = "message"
REPORT_TARGET_OTHER = "other"
REPORT_TARGET_GENERAL = "general"

REPORT_TARGET_TYPES = {
    REPORT_TARGET_PRODUCT,
    REPORT_TARGET_USER,
    REPORT_TARGET_MESSAGE,
    REPORT_TARGET_OTHER,
    REPORT_TARGET_GENERAL,
}

REPORT_PENDING = "pending"
REPORT_INVESTIGATING = "investigating"
REPORT_RESOLVED = "resolved"
REPORT_DISMISSED = "dismissed"

REPORT_STATUSES = {REPORT_PENDING, REPORT_INVESTIGATING, REPORT_RESOLVED, REPORT_DISMISSED}
REPORT_CLOSED_STATUSES = {REPORT_RESOLVED, REPORT_DISMISSED}

REPORT_DESCRIPTION_MIN = 10
REPORT_DESCRIPTION_MAX = 1000

# -----------------------------
# PAGINATION
# -----------------------------

DEFAULT_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = 100
