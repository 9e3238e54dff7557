from .accounts import Admin, User, SessionToken, ROLE_USER, ROLE_ADMIN, ROLE_SUPERADMIN, ADMIN_ROLES
from .catalog import Product, Inventory, InventoryLogEntry, Discount, discount_products, discount_users
from .orders import Order, OrderItem, ReturnRequest, ReturnRequestItem, Cart, CartItem, Invoice
from .engagement import Review, ReviewVote, WishlistItem

__all__ = [
    'Admin', 'User', 'SessionToken',
    'ROLE_USER', 'ROLE_ADMIN', 'ROLE_SUPERADMIN', 'ADMIN_ROLES',
    'Product', 'Inventory', 'InventoryLogEntry', 'Discount',
    'discount_products', 'discount_users',
    'Order', 'OrderItem', 'ReturnRequest', 'ReturnRequestItem',
    'Cart', 'CartItem', 'Invoice',
    'Review', 'ReviewVote', 'WishlistItem',
]
