from app.models.user import User
from app.models.listing import Listing, PriceHistory
from app.models.order import Order, OrderTransition
from app.models.payout import Payout, PlatformFee
from app.models.bid import Bid
from app.models.review import Review
from app.models.conversation import Conversation, Message
from app.models.promotion import Promotion
from app.models.refund import Refund, ReturnRequest, Dispute
from app.models.seller_limit import SellerLimit
from app.models.fraud import ProhibitedItem, FraudAlert
from app.models.notification import Notification, PushSubscription
from app.models.audit import PlatformEvent, FinancialAuditLog
from app.models.indexing import IndexingQueueItem
from app.models.webhook_event import WebhookEvent
from app.models.integration_settings import IntegrationSettings
from app.models.idempotency_key import IdempotencyKey

__all__ = [
    "User",
    "Listing",
    "PriceHistory",
    "Order",
    "OrderTransition",
    "Payout",
    "PlatformFee",
    "Bid",
    "Review",
    "Conversation",
    "Message",
    "Promotion",
    "Refund",
    "ReturnRequest",
    "Dispute",
    "SellerLimit",
    "ProhibitedItem",
    "FraudAlert",
    "Notification",
    "PushSubscription",
    "PlatformEvent",
    "FinancialAuditLog",
    "IndexingQueueItem",
    "WebhookEvent",
    "IntegrationSettings",
    "IdempotencyKey",
]
