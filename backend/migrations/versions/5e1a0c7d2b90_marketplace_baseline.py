"""marketplace baseline

Revision ID: 5e1a0c7d2b90
Revises:
Create Date: 2026-10-19 09:00:00
"""
from alembic import op
import sqlalchemy as sa

revision = '5e1a0c7d2b90'
down_revision = None
branch_labels = None
depends_on = None


def _now(bind):
    return sa.text("CURRENT_TIMESTAMP") if bind.dialect.name == "sqlite" else sa.text("now()")


def _false(bind):
    return sa.text("0") if bind.dialect.name == "sqlite" else sa.false()


def _true(bind):
    return sa.text("1") if bind.dialect.name == "sqlite" else sa.true()


def upgrade():
    bind = op.get_bind()
    now, false, true = _now(bind), _false(bind), _true(bind)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("display_name", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="user"),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=false),
        sa.Column("is_suspended", sa.Boolean(), nullable=False, server_default=false),
        sa.Column("kyc_status", sa.String(length=24), nullable=False, server_default="not_started"),
        sa.Column("kyc_documents_submitted", sa.Boolean(), nullable=False, server_default=false),
        sa.Column("kyc_verified_at", sa.DateTime(), nullable=True),
        sa.Column("address_line1", sa.String(length=255), nullable=True),
        sa.Column("city", sa.String(length=120), nullable=True),
        sa.Column("postal_code", sa.String(length=32), nullable=True),
        sa.Column("country", sa.String(length=64), nullable=True),
        sa.Column("iban", sa.String(length=64), nullable=True),
        sa.Column("account_number", sa.String(length=32), nullable=True),
        sa.Column("sort_code", sa.String(length=16), nullable=True),
        sa.Column("stripe_account_id", sa.String(length=120), nullable=True),
        sa.Column("paypal_email", sa.String(length=255), nullable=True),
        sa.Column("withdrawal_blocked", sa.Boolean(), nullable=False, server_default=false),
        sa.Column("fraud_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_login_ip", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=now),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_last_login_ip", "users", ["last_login_ip"])

    op.create_table(
        "listings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=80), nullable=True),
        sa.Column("condition", sa.String(length=32), nullable=True),
        sa.Column("location", sa.String(length=120), nullable=True),
        sa.Column("images_json", sa.Text(), nullable=True),
        sa.Column("price", sa.Float(), nullable=False, server_default="0"),
        sa.Column("listing_type", sa.String(length=16), nullable=False, server_default="fixed"),
        sa.Column("starting_bid", sa.Float(), nullable=True),
        sa.Column("auction_end_date", sa.DateTime(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=true),
        sa.Column("is_sold", sa.Boolean(), nullable=False, server_default=false),
        sa.Column("views_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=now),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=now),
    )
    for col in ("seller_id", "category", "is_active", "is_sold", "created_at"):
        op.create_index(f"ix_listings_{col}", "listings", [col])

    op.create_table(
        "price_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("listing_id", sa.Integer(), sa.ForeignKey("listings.id"), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=now),
    )
    op.create_index("ix_price_history_listing_id", "price_history", ["listing_id"])

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("buyer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("listing_id", sa.Integer(), sa.ForeignKey("listings.id"), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("buyer_fee", sa.Float(), nullable=False, server_default="0"),
        sa.Column("shipping_cost", sa.Float(), nullable=False, server_default="0"),
        sa.Column("seller_commission", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=8), nullable=False, server_default="ron"),
        sa.Column("shipping_method", sa.String(length=24), nullable=False, server_default="standard"),
        sa.Column("shipping_address", sa.Text(), nullable=True),
        sa.Column("payment_provider", sa.String(length=24), nullable=True),
        sa.Column("checkout_session_id", sa.String(length=255), nullable=True),
        sa.Column("payment_intent_id", sa.String(length=255), nullable=True),
        sa.Column("paypal_order_id", sa.String(length=255), nullable=True),
        sa.Column("tracking_number", sa.String(length=120), nullable=True),
        sa.Column("carrier", sa.String(length=32), nullable=True),
        sa.Column("shipped_at", sa.DateTime(), nullable=True),
        sa.Column("delivery_confirmed_at", sa.DateTime(), nullable=True),
        sa.Column("payout_amount", sa.Float(), nullable=True),
        sa.Column("payout_status", sa.String(length=24), nullable=True),
        sa.Column("refund_status", sa.String(length=32), nullable=True),
        sa.Column("refund_amount", sa.Float(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancel_reason", sa.String(length=240), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=now),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=now),
    )
    for col in ("buyer_id", "seller_id", "listing_id", "status", "checkout_session_id", "paypal_order_id", "created_at"):
        op.create_index(f"ix_orders_{col}", "orders", [col])

    op.create_table(
        "order_transitions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("from_status", sa.String(length=32), nullable=False, server_default=""),
        sa.Column("to_status", sa.String(length=32), nullable=False),
        sa.Column("actor_type", sa.String(length=32), nullable=False, server_default="system"),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("idempotency_key", sa.String(length=160), nullable=False),
        sa.Column("reason", sa.String(length=240), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=now),
        sa.UniqueConstraint("order_id", "idempotency_key", name="uq_order_transition_order_key"),
    )
    op.create_index("ix_order_transitions_order_id", "order_transitions", ["order_id"])

    op.create_table(
        "payouts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=True, unique=True),
        sa.Column("kind", sa.String(length=16), nullable=False, server_default="sale"),
        sa.Column("gross_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("platform_fee", sa.Float(), nullable=False, server_default="0"),
        sa.Column("net_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=8), nullable=False, server_default="ron"),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="pending"),
        sa.Column("transfer_id", sa.String(length=120), nullable=True),
        sa.Column("failure_reason", sa.String(length=240), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=now),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
    )
    for col in ("seller_id", "status", "created_at"):
        op.create_index(f"ix_payouts_{col}", "payouts", [col])

    op.create_table(
        "platform_fees",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("fee_type", sa.String(length=40), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("is_percentage", sa.Boolean(), nullable=False, server_default=false),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=true),
        sa.Column("description", sa.String(length=240), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=now),
    )
    op.create_index("ix_platform_fees_fee_type", "platform_fees", ["fee_type"])

    op.create_table(
        "bids",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("listing_id", sa.Integer(), sa.ForeignKey("listings.id"), nullable=False),
        sa.Column("bidder_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=now),
    )
    op.create_index("ix_bids_listing_id", "bids", ["listing_id"])
    op.create_index("ix_bids_bidder_id", "bids", ["bidder_id"])

    op.create_table(
        "reviews",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False, unique=True),
        sa.Column("reviewer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=now),
    )
    op.create_index("ix_reviews_reviewer_id", "reviews", ["reviewer_id"])
    op.create_index("ix_reviews_seller_id", "reviews", ["seller_id"])

    op.create_table(
        "conversations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("listing_id", sa.Integer(), sa.ForeignKey("listings.id"), nullable=True),
        sa.Column("buyer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=now),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=now),
        sa.UniqueConstraint("listing_id", "buyer_id", "seller_id", name="uq_conversation_participants"),
    )
    for col in ("listing_id", "buyer_id", "seller_id"):
        op.create_index(f"ix_conversations_{col}", "conversations", [col])

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("conversation_id", sa.Integer(), sa.ForeignKey("conversations.id"), nullable=False),
        sa.Column("sender_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=false),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=now),
    )
    op.create_index("ix_messages_conversation_id", "messages", ["conversation_id"])
    op.create_index("ix_messages_created_at", "messages", ["created_at"])

    op.create_table(
        "listing_promotions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("listing_id", sa.Integer(), sa.ForeignKey("listings.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("promotion_type", sa.String(length=24), nullable=False),
        sa.Column("platform", sa.String(length=32), nullable=True),
        sa.Column("amount_paid", sa.Float(), nullable=False, server_default="0"),
        sa.Column("payment_intent_id", sa.String(length=255), nullable=True),
        sa.Column("starts_at", sa.DateTime(), nullable=False, server_default=now),
        sa.Column("ends_at", sa.DateTime(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=true),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=now),
    )
    for col in ("listing_id", "user_id", "ends_at"):
        op.create_index(f"ix_listing_promotions_{col}", "listing_promotions", [col])

    op.create_table(
        "refunds",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("requested_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("processed_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="pending"),
        sa.Column("provider_ref", sa.String(length=120), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=now),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_refunds_order_id", "refunds", ["order_id"])
    op.create_index("ix_refunds_status", "refunds", ["status"])

    op.create_table(
        "returns",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("buyer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("reason", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=now),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=now),
    )
    op.create_index("ix_returns_order_id", "returns", ["order_id"])

    op.create_table(
        "disputes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("opened_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="open"),
        sa.Column("resolution_note", sa.Text(), nullable=True),
        sa.Column("resolved_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=now),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_disputes_order_id", "disputes", ["order_id"])

    op.create_table(
        "seller_limits",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, unique=True),
        sa.Column("tier", sa.String(length=24), nullable=False, server_default="new"),
        sa.Column("max_listings", sa.Integer(), nullable=True),
        sa.Column("max_monthly_sales", sa.Float(), nullable=True),
        sa.Column("updated_by", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=now),
    )

    op.create_table(
        "prohibited_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("keyword", sa.String(length=120), nullable=False),
        sa.Column("category", sa.String(length=80), nullable=True),
        sa.Column("severity", sa.String(length=16), nullable=False, server_default="block"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=true),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=now),
    )
    op.create_index("ix_prohibited_items_keyword", "prohibited_items", ["keyword"])

    op.create_table(
        "fraud_alerts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("listing_id", sa.Integer(), sa.ForeignKey("listings.id"), nullable=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=True),
        sa.Column("alert_type", sa.String(length=48), nullable=False),
        sa.Column("severity", sa.String(length=16), nullable=False, server_default="warning"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("details_json", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("auto_action_taken", sa.String(length=48), nullable=True),
        sa.Column("resolved_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=now),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
    )
    for col in ("user_id", "listing_id", "alert_type", "status", "created_at"):
        op.create_index(f"ix_fraud_alerts_{col}", "fraud_alerts", [col])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("type", sa.String(length=40), nullable=False, server_default="general"),
        sa.Column("channel", sa.String(length=16), nullable=False, server_default="in_app"),
        sa.Column("title", sa.String(length=160), nullable=True),
        sa.Column("message", sa.Text(), nullable=False, server_default=""),
        sa.Column("data_json", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="sent"),
        sa.Column("provider", sa.String(length=32), nullable=True),
        sa.Column("provider_ref", sa.String(length=120), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=false),
        sa.Column("read_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=now),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])

    op.create_table(
        "push_subscriptions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("endpoint", sa.String(length=1024), nullable=False),
        sa.Column("p256dh", sa.String(length=255), nullable=False),
        sa.Column("auth", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=now),
        sa.UniqueConstraint("user_id", "endpoint", name="uq_push_subscription_user_endpoint"),
    )
    op.create_index("ix_push_subscriptions_user_id", "push_subscriptions", ["user_id"])

    op.create_table(
        "platform_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=now),
        sa.Column("event_type", sa.String(length=80), nullable=False),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("subject_type", sa.String(length=40), nullable=True),
        sa.Column("subject_id", sa.String(length=64), nullable=True),
        sa.Column("request_id", sa.String(length=80), nullable=True),
        sa.Column("idempotency_key", sa.String(length=180), nullable=True, unique=True),
        sa.Column("severity", sa.String(length=16), nullable=False, server_default="INFO"),
        sa.Column("metadata_json", sa.Text(), nullable=True),
    )
    for col in ("created_at", "event_type", "actor_user_id", "severity"):
        op.create_index(f"ix_platform_events_{col}", "platform_events", [col])

    op.create_table(
        "financial_audit_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("amount", sa.Float(), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("details_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=now),
    )
    for col in ("user_id", "action", "created_at"):
        op.create_index(f"ix_financial_audit_log_{col}", "financial_audit_log", [col])

    op.create_table(
        "indexing_queue",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("url", sa.String(length=1024), nullable=False),
        sa.Column("action", sa.String(length=24), nullable=False, server_default="URL_UPDATED"),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.String(length=240), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=now),
        sa.Column("submitted_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_indexing_queue_status", "indexing_queue", ["status"])

    op.create_table(
        "webhook_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("provider", sa.String(length=32), nullable=False, server_default="stripe"),
        sa.Column("event_id", sa.String(length=128), nullable=False),
        sa.Column("event_type", sa.String(length=80), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="received"),
        sa.Column("request_id", sa.String(length=64), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=now),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("provider", "event_id", name="uq_webhook_provider_event"),
    )

    op.create_table(
        "integration_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("integrations_mode", sa.String(length=24), nullable=False, server_default="disabled"),
        sa.Column("payments_provider", sa.String(length=24), nullable=False, server_default="mock"),
        sa.Column("paypal_enabled", sa.Boolean(), nullable=False, server_default=false),
        sa.Column("sms_enabled", sa.Boolean(), nullable=False, server_default=false),
        sa.Column("email_enabled", sa.Boolean(), nullable=False, server_default=false),
        sa.Column("indexing_enabled", sa.Boolean(), nullable=False, server_default=false),
        sa.Column("updated_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=now),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=now),
    )

    op.create_table(
        "idempotency_keys",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(length=128), nullable=False),
        sa.Column("scope", sa.String(length=128), nullable=False, server_default=""),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("request_hash", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("response_json", sa.Text(), nullable=True),
        sa.Column("status_code", sa.Integer(), nullable=False, server_default="200"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=now),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=now),
        sa.UniqueConstraint("scope", "key", name="uq_idempotency_scope_key"),
    )


def downgrade():
    for table in (
        "idempotency_keys",
        "integration_settings",
        "webhook_events",
        "indexing_queue",
        "financial_audit_log",
        "platform_events",
        "push_subscriptions",
        "notifications",
        "fraud_alerts",
        "prohibited_items",
        "seller_limits",
        "disputes",
        "returns",
        "refunds",
        "listing_promotions",
        "messages",
        "conversations",
        "reviews",
        "bids",
        "platform_fees",
        "payouts",
        "order_transitions",
        "orders",
        "price_history",
        "listings",
        "users",
    ):
        op.drop_table(table)
