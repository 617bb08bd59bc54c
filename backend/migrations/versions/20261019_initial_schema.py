"""Initial schema: accounts, merchants, coupons, table orders, wallets, payments, tickets

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None

OPEN_SESSION_WHERE = sa.text("status IN ('active', 'ordering')")


def _created_at():
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False)


def upgrade():
    # --- Merchants and accounts ---
    op.create_table(
        "merchants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("business_name", sa.String(128), nullable=False),
        sa.Column("owner_name", sa.String(64), nullable=False),
        sa.Column("phone", sa.String(32), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("business_number", sa.String(32), nullable=True),
        sa.Column("category", sa.String(32), nullable=True),
        sa.Column("approval_status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.CheckConstraint(
            "approval_status IN ('pending', 'reviewing', 'approved', 'rejected', 'suspended')",
            name="ck_merchants_approval_status",
        ),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_merchants_approval_status", "merchants", ["approval_status"], unique=False)

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(128), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.String(16), nullable=False, server_default="CONSUMER"),
        sa.Column("merchant_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _created_at(),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("role IN ('CONSUMER', 'MERCHANT', 'ADMIN')", name="ck_accounts_role"),
        sa.ForeignKeyConstraint(["merchant_id"], ["merchants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_accounts_email"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("accounts", schema=None) as batch_op:
        batch_op.create_index("ix_accounts_role", ["role"], unique=False)
        batch_op.create_index("ix_accounts_merchant_id", ["merchant_id"], unique=False)

    op.create_table(
        "session_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_revoked", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("user_agent", sa.String(255), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("session_tokens", schema=None) as batch_op:
        batch_op.create_index("ix_session_tokens_account_id", ["account_id"], unique=False)
        batch_op.create_index("ix_session_tokens_token_hash", ["token_hash"], unique=True)
        batch_op.create_index("ix_session_tokens_account_active", ["account_id", "is_revoked"], unique=False)

    # --- Stores, tables, catalog ---
    op.create_table(
        "stores",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("merchant_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("category", sa.String(32), nullable=True),
        sa.Column("lat", sa.Float(), nullable=True),
        sa.Column("lng", sa.Float(), nullable=True),
        sa.Column("radius_m", sa.Integer(), nullable=False, server_default=sa.text("5000")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _created_at(),
        sa.ForeignKeyConstraint(["merchant_id"], ["merchants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stores", schema=None) as batch_op:
        batch_op.create_index("ix_stores_merchant_id", ["merchant_id"], unique=False)
        batch_op.create_index("ix_stores_category", ["category"], unique=False)
        batch_op.create_index("ix_stores_is_active", ["is_active"], unique=False)
        batch_op.create_index("ix_stores_merchant_active", ["merchant_id", "is_active"], unique=False)

    op.create_table(
        "store_tables",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("table_number", sa.String(16), nullable=False),
        sa.Column("seats", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("store_id", "table_number", name="uq_store_tables_store_number"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_store_tables_store_id", "store_tables", ["store_id"], unique=False)

    op.create_table(
        "merchant_approvals",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("merchant_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(16), nullable=False),
        sa.Column("from_status", sa.String(16), nullable=False),
        sa.Column("to_status", sa.String(16), nullable=False),
        sa.Column("reason", sa.String(255), nullable=True),
        sa.Column("admin_account_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["merchant_id"], ["merchants.id"]),
        sa.ForeignKeyConstraint(["admin_account_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_merchant_approvals_merchant_id", "merchant_approvals", ["merchant_id"], unique=False)

    op.create_table(
        "merchant_customers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("merchant_id", sa.Integer(), nullable=False),
        sa.Column("consumer_id", sa.Integer(), nullable=False),
        sa.Column("visit_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("coupon_issue_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_spent", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_touchpoint", sa.String(32), nullable=True),
        sa.Column("first_visit_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_visit_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["merchant_id"], ["merchants.id"]),
        sa.ForeignKeyConstraint(["consumer_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("merchant_id", "consumer_id", name="uq_merchant_customers_pair"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("merchant_customers", schema=None) as batch_op:
        batch_op.create_index("ix_merchant_customers_merchant_id", ["merchant_id"], unique=False)
        batch_op.create_index("ix_merchant_customers_consumer_id", ["consumer_id"], unique=False)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(32), nullable=True),
        sa.Column("base_price", sa.Integer(), nullable=False),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _created_at(),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_store_id", ["store_id"], unique=False)
        batch_op.create_index("ix_products_store_active", ["store_id", "is_active"], unique=False)

    # --- Coupons and table orders ---
    op.create_table(
        "coupons",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("merchant_id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=True),
        sa.Column("title", sa.String(128), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(32), nullable=True),
        sa.Column("discount_type", sa.String(16), nullable=False),
        sa.Column("discount_value", sa.Integer(), nullable=False),
        sa.Column("max_discount_amount", sa.Integer(), nullable=True),
        sa.Column("min_order_amount", sa.Integer(), nullable=True),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=True),
        sa.Column("valid_to", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_issuable", sa.Integer(), nullable=True),
        sa.Column("issued_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("per_user_limit", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _created_at(),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.CheckConstraint("discount_type IN ('percent', 'amount')", name="ck_coupons_discount_type"),
        sa.CheckConstraint("issued_count >= 0", name="ck_coupons_issued_count"),
        sa.CheckConstraint(
            "total_issuable IS NULL OR issued_count <= total_issuable",
            name="ck_coupons_issued_within_limit",
        ),
        sa.ForeignKeyConstraint(["merchant_id"], ["merchants.id"]),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("coupons", schema=None) as batch_op:
        batch_op.create_index("ix_coupons_merchant_id", ["merchant_id"], unique=False)
        batch_op.create_index("ix_coupons_store_id", ["store_id"], unique=False)
        batch_op.create_index("ix_coupons_is_active", ["is_active"], unique=False)
        batch_op.create_index("ix_coupons_merchant_active", ["merchant_id", "is_active"], unique=False)

    op.create_table(
        "table_sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("table_id", sa.Integer(), nullable=False),
        sa.Column("session_code", sa.String(8), nullable=False),
        sa.Column("consumer_id", sa.Integer(), nullable=True),
        sa.Column("guest_phone", sa.String(32), nullable=True),
        sa.Column("party_size", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("total_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("final_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("applied_coupon_issue_id", sa.Integer(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ordered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("status IN ('active', 'ordering', 'paid', 'closed')", name="ck_table_sessions_status"),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.ForeignKeyConstraint(["table_id"], ["store_tables.id"]),
        sa.ForeignKeyConstraint(["consumer_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("session_code", name="uq_table_sessions_session_code"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("table_sessions", schema=None) as batch_op:
        batch_op.create_index("ix_table_sessions_store_id", ["store_id"], unique=False)
        batch_op.create_index("ix_table_sessions_table_id", ["table_id"], unique=False)
        batch_op.create_index("ix_table_sessions_consumer_id", ["consumer_id"], unique=False)
        batch_op.create_index("ix_table_sessions_status", ["status"], unique=False)
    # One open (active/ordering) session per table
    op.create_index(
        "uq_table_sessions_open_table",
        "table_sessions",
        ["table_id"],
        unique=True,
        sqlite_where=OPEN_SESSION_WHERE,
        postgresql_where=OPEN_SESSION_WHERE,
    )

    op.create_table(
        "coupon_issues",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("coupon_id", sa.Integer(), nullable=False),
        sa.Column("consumer_id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="ISSUED"),
        sa.Column("reason", sa.String(64), nullable=False, server_default="MANUAL"),
        sa.Column("issued_from", sa.String(16), nullable=False, server_default="merchant"),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("used_store_id", sa.Integer(), nullable=True),
        sa.Column("used_order_session_id", sa.Integer(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("status IN ('ISSUED', 'USED', 'EXPIRED', 'CANCELLED')", name="ck_coupon_issues_status"),
        sa.ForeignKeyConstraint(["coupon_id"], ["coupons.id"]),
        sa.ForeignKeyConstraint(["consumer_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["used_store_id"], ["stores.id"]),
        sa.ForeignKeyConstraint(["used_order_session_id"], ["table_sessions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code", name="uq_coupon_issues_code"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("coupon_issues", schema=None) as batch_op:
        batch_op.create_index("ix_coupon_issues_coupon_id", ["coupon_id"], unique=False)
        batch_op.create_index("ix_coupon_issues_consumer_id", ["consumer_id"], unique=False)
        batch_op.create_index("ix_coupon_issues_status", ["status"], unique=False)
        batch_op.create_index("ix_coupon_issues_consumer_status", ["consumer_id", "status"], unique=False)
        batch_op.create_index("ix_coupon_issues_coupon_consumer", ["coupon_id", "consumer_id"], unique=False)

    op.create_table(
        "kitchen_orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("session_id", sa.Integer(), nullable=False),
        sa.Column("table_id", sa.Integer(), nullable=True),
        sa.Column("business_date", sa.Date(), nullable=False),
        sa.Column("order_number", sa.Integer(), nullable=False),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("subtotal", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("final_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("coupon_issue_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="new"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ready_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("served_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('new', 'preparing', 'ready', 'served', 'cancelled')",
            name="ck_kitchen_orders_status",
        ),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.ForeignKeyConstraint(["session_id"], ["table_sessions.id"]),
        sa.ForeignKeyConstraint(["table_id"], ["store_tables.id"]),
        sa.ForeignKeyConstraint(["coupon_issue_id"], ["coupon_issues.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("store_id", "business_date", "order_number", name="uq_kitchen_orders_store_day_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("kitchen_orders", schema=None) as batch_op:
        batch_op.create_index("ix_kitchen_orders_store_id", ["store_id"], unique=False)
        batch_op.create_index("ix_kitchen_orders_session_id", ["session_id"], unique=False)
        batch_op.create_index("ix_kitchen_orders_status", ["status"], unique=False)
        batch_op.create_index("ix_kitchen_orders_store_created", ["store_id", "created_at"], unique=False)

    op.create_table(
        "cart_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("session_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("kitchen_order_id", sa.Integer(), nullable=True),
        sa.Column("product_name", sa.String(128), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("unit_price", sa.Integer(), nullable=False),
        sa.Column("options", sa.JSON(), nullable=True),
        sa.Column("special_request", sa.String(255), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_cart_items_quantity_positive"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'preparing', 'served', 'cancelled')",
            name="ck_cart_items_status",
        ),
        sa.ForeignKeyConstraint(["session_id"], ["table_sessions.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["kitchen_order_id"], ["kitchen_orders.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("cart_items", schema=None) as batch_op:
        batch_op.create_index("ix_cart_items_session_id", ["session_id"], unique=False)
        batch_op.create_index("ix_cart_items_kitchen_order_id", ["kitchen_order_id"], unique=False)
        batch_op.create_index("ix_cart_items_session_status", ["session_id", "status"], unique=False)

    op.create_table(
        "daily_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sequence_type", sa.String(32), nullable=False),
        sa.Column("scope_id", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("business_date", sa.Date(), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sequence_type", "scope_id", "business_date", name="uq_daily_sequences_scope_day"),
        sqlite_autoincrement=True,
    )

    # --- Wallet ledger ---
    op.create_table(
        "wallets",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("owner_type", sa.String(16), nullable=False),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        sa.Column("balance", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_charged", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_used", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.CheckConstraint("owner_type IN ('CONSUMER', 'MERCHANT')", name="ck_wallets_owner_type"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("owner_type", "owner_id", name="uq_wallets_owner"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_wallets_owner_id", "wallets", ["owner_id"], unique=False)

    op.create_table(
        "wallet_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("wallet_id", sa.Integer(), nullable=False),
        sa.Column("tx_type", sa.String(32), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("balance_before", sa.BigInteger(), nullable=False),
        sa.Column("balance_after", sa.BigInteger(), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("reference_type", sa.String(32), nullable=True),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("balance_after = balance_before + amount", name="ck_wallet_tx_balance_identity"),
        sa.ForeignKeyConstraint(["wallet_id"], ["wallets.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("wallet_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_wallet_transactions_wallet_id", ["wallet_id"], unique=False)
        batch_op.create_index("ix_wallet_transactions_tx_type", ["tx_type"], unique=False)
        batch_op.create_index("ix_wallet_transactions_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_wallet_tx_wallet_id_id", ["wallet_id", "id"], unique=False)

    # --- Payments ---
    op.create_table(
        "topup_packages",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("bonus_amount", sa.Integer(), nullable=True),
        sa.Column("bonus_percent", sa.Integer(), nullable=True),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("merchant_id", sa.Integer(), nullable=False),
        sa.Column("payment_type", sa.String(16), nullable=False, server_default="topup"),
        sa.Column("package_id", sa.Integer(), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("bonus_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("pg_order_id", sa.String(64), nullable=False),
        sa.Column("payment_key", sa.String(200), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("method", sa.String(32), nullable=True),
        sa.Column("card_company", sa.String(64), nullable=True),
        sa.Column("receipt_url", sa.String(255), nullable=True),
        sa.Column("failure_code", sa.String(64), nullable=True),
        sa.Column("failure_message", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("status IN ('pending', 'paid', 'failed')", name="ck_payments_status"),
        sa.CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        sa.ForeignKeyConstraint(["merchant_id"], ["merchants.id"]),
        sa.ForeignKeyConstraint(["package_id"], ["topup_packages.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("pg_order_id", name="uq_payments_pg_order_id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("payments", schema=None) as batch_op:
        batch_op.create_index("ix_payments_merchant_id", ["merchant_id"], unique=False)
        batch_op.create_index("ix_payments_status", ["status"], unique=False)

    # --- Events, audit, side-effect failure log ---
    op.create_table(
        "transaction_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(32), nullable=False),
        sa.Column("merchant_id", sa.Integer(), nullable=True),
        sa.Column("store_id", sa.Integer(), nullable=True),
        sa.Column("consumer_id", sa.Integer(), nullable=True),
        sa.Column("reference_type", sa.String(32), nullable=True),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("transaction_events", schema=None) as batch_op:
        batch_op.create_index("ix_transaction_events_merchant_id", ["merchant_id"], unique=False)
        batch_op.create_index("ix_transaction_events_type_created", ["event_type", "created_at"], unique=False)

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("actor_account_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(32), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["actor_account_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_audit_logs_actor_account_id", "audit_logs", ["actor_account_id"], unique=False)

    op.create_table(
        "side_effect_failures",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("error", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_side_effect_failures_name", "side_effect_failures", ["name"], unique=False)

    # --- Game and tickets ---
    op.create_table(
        "game_sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("consumer_id", sa.Integer(), nullable=False),
        sa.Column("game_type", sa.String(32), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("steps_cleared", sa.Integer(), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=True),
        sa.Column("client_info", sa.JSON(), nullable=True),
        sa.Column("reward_type", sa.String(16), nullable=True),
        sa.Column("reward_value", sa.Integer(), nullable=True),
        sa.Column("coupon_issue_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["consumer_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["coupon_issue_id"], ["coupon_issues.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_game_sessions_consumer_id", "game_sessions", ["consumer_id"], unique=False)

    op.create_table(
        "ticketed_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("merchant_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(128), nullable=False),
        sa.Column("venue", sa.String(255), nullable=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["merchant_id"], ["merchants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_ticketed_events_merchant_id", "ticketed_events", ["merchant_id"], unique=False)

    op.create_table(
        "ticket_types",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_quantity", sa.Integer(), nullable=False),
        sa.Column("sold_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("reserved_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("max_per_order", sa.Integer(), nullable=False, server_default=sa.text("10")),
        sa.CheckConstraint("sold_quantity + reserved_quantity <= total_quantity", name="ck_ticket_types_capacity"),
        sa.ForeignKeyConstraint(["event_id"], ["ticketed_events.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_ticket_types_event_id", "ticket_types", ["event_id"], unique=False)

    op.create_table(
        "tickets",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("ticket_type_id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("consumer_id", sa.Integer(), nullable=False),
        sa.Column("ticket_number", sa.String(32), nullable=False),
        sa.Column("qr_code", sa.String(32), nullable=False),
        sa.Column("price_paid", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(16), nullable=False, server_default="valid"),
        sa.Column("purchased_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("status IN ('valid', 'used', 'cancelled')", name="ck_tickets_status"),
        sa.ForeignKeyConstraint(["ticket_type_id"], ["ticket_types.id"]),
        sa.ForeignKeyConstraint(["event_id"], ["ticketed_events.id"]),
        sa.ForeignKeyConstraint(["consumer_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("ticket_number", name="uq_tickets_ticket_number"),
        sa.UniqueConstraint("qr_code", name="uq_tickets_qr_code"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("tickets", schema=None) as batch_op:
        batch_op.create_index("ix_tickets_ticket_type_id", ["ticket_type_id"], unique=False)
        batch_op.create_index("ix_tickets_event_id", ["event_id"], unique=False)
        batch_op.create_index("ix_tickets_consumer_id", ["consumer_id"], unique=False)


def downgrade():
    for table in (
        "tickets",
        "ticket_types",
        "ticketed_events",
        "game_sessions",
        "side_effect_failures",
        "audit_logs",
        "transaction_events",
        "payments",
        "topup_packages",
        "wallet_transactions",
        "wallets",
        "daily_sequences",
        "cart_items",
        "kitchen_orders",
        "coupon_issues",
        "table_sessions",
        "coupons",
        "products",
        "merchant_customers",
        "merchant_approvals",
        "store_tables",
        "stores",
        "session_tokens",
        "accounts",
        "merchants",
    ):
        op.drop_table(table)
