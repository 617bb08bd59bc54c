from .merchants import Merchant, Store, StoreTable, MerchantApproval, MerchantCustomer
from .accounts import Account, SessionToken
from .catalog import Product
from .coupons import Coupon, CouponIssue
from .orders import TableSession, CartItem, KitchenOrder
from .sequences import DailySequence
from .wallets import Wallet, WalletTransaction
from .payments import TopupPackage, Payment
from .events import TransactionEvent, AuditLog, SideEffectFailure
from .games import GameSession
from .tickets import TicketedEvent, TicketType, Ticket

__all__ = [
    'Merchant', 'Store', 'StoreTable', 'MerchantApproval', 'MerchantCustomer',
    'Account', 'SessionToken',
    'Product',
    'Coupon', 'CouponIssue',
    'TableSession', 'CartItem', 'KitchenOrder',
    'DailySequence',
    'Wallet', 'WalletTransaction',
    'TopupPackage', 'Payment',
    'TransactionEvent', 'AuditLog', 'SideEffectFailure',
    'GameSession',
    'TicketedEvent', 'TicketType', 'Ticket',
]
