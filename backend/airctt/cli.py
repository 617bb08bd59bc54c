# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/airctt/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables from the models (use `flask db upgrade` for migrated databases).
# - python -m flask system seed
#   Idempotent demo data: admin/consumer/merchant accounts, an approved merchant with
#   one store, tables, menu, coupons, top-up packages and a ticketed event.
#
# Accounts:
# - python -m flask accounts create --email a@b.c --password "Password123!" --role ADMIN
# - python -m flask accounts create --email m@b.c --password "Password123!" --role MERCHANT --merchant-id 1
#
# Wallets:
# - python -m flask wallets verify-ledger [--wallet-id 3]
#   Exit code 1 when any ledger invariant is violated.
#
# Maintenance:
# - python -m flask maintenance purge-sessions
#   Delete expired and revoked session tokens.

import click
from datetime import timedelta
from flask.cli import with_appcontext

from .extensions import db
from .models import Account, Coupon, Merchant, Product, Store, StoreTable, TicketType, TicketedEvent, TopupPackage
from .models.accounts import ROLES, ROLE_ADMIN, ROLE_CONSUMER, ROLE_MERCHANT
from .services import session_service, wallet_service
from .services.auth_service import PasswordValidationError, create_account
from .time_utils import utcnow
from .validation import ServiceError

DEMO_PASSWORD = "Password123!"
DEMO_MERCHANT_NAME = "Demo Coffee"


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables for the current models."""
    db.create_all()
    click.echo("PASS Tables created")


def _ensure_account(email: str, role: str, merchant_id: int | None = None) -> Account:
    existing = db.session.query(Account).filter_by(email=email).first()
    if existing:
        click.echo(f"WARN  Account '{email}' already exists, skipping...")
        return existing
    account = create_account(email, DEMO_PASSWORD, role, merchant_id=merchant_id)
    click.echo(f"PASS Created account: {email} ({role})")
    return account


@system_group.command('seed')
@with_appcontext
def seed():
    """
    Load demo data for local development.

    Safe to re-run: existing rows are detected by their natural keys and
    left untouched.

    SECURITY: Demo passwords are public. Never run this against production.
    """
    click.echo("START Seeding demo data...")

    merchant = db.session.query(Merchant).filter_by(business_name=DEMO_MERCHANT_NAME).first()
    if not merchant:
        merchant = Merchant(
            business_name=DEMO_MERCHANT_NAME,
            owner_name="Demo Owner",
            phone="010-0000-0000",
            email="owner@demo.local",
            category="cafe",
            approval_status="approved",
            approved_at=utcnow(),
        )
        db.session.add(merchant)
        db.session.flush()

        store = Store(
            merchant_id=merchant.id,
            name="Demo Coffee Gangnam",
            address="Seoul Gangnam-gu Teheran-ro 1",
            category="cafe",
            lat=37.4979,
            lng=127.0276,
            radius_m=5000,
            is_active=True,
        )
        db.session.add(store)
        db.session.flush()

        for number in range(1, 6):
            db.session.add(StoreTable(store_id=store.id, table_number=str(number), seats=4, is_active=True))

        menu = [
            ("Americano", "coffee", 4500),
            ("Cafe Latte", "coffee", 5000),
            ("Vanilla Latte", "coffee", 5500),
            ("Cheesecake", "dessert", 6500),
        ]
        for order, (name, category, price) in enumerate(menu):
            db.session.add(Product(
                store_id=store.id, name=name, category=category,
                base_price=price, display_order=order, is_active=True,
            ))

        now = utcnow()
        db.session.add(Coupon(
            merchant_id=merchant.id, title="10% off", category="cafe",
            discount_type="percent", discount_value=10, max_discount_amount=5000,
            valid_from=now, valid_to=now + timedelta(days=30),
            total_issuable=1000, issued_count=0, per_user_limit=1, is_active=True,
        ))
        db.session.add(Coupon(
            merchant_id=merchant.id, title="3,000 off orders over 10,000", category="cafe",
            discount_type="amount", discount_value=3000, min_order_amount=10000,
            valid_from=now, valid_to=now + timedelta(days=30),
            issued_count=0, is_active=True,
        ))

        event = TicketedEvent(
            merchant_id=merchant.id, title="Latte Art Night", venue=store.name,
            starts_at=now + timedelta(days=14), is_active=True,
        )
        db.session.add(event)
        db.session.flush()
        db.session.add(TicketType(
            event_id=event.id, name="General", price=15000,
            total_quantity=50, sold_quantity=0, reserved_quantity=0, max_per_order=4,
        ))
        db.session.commit()
        click.echo(f"PASS Created merchant: {merchant.business_name} (ID: {merchant.id}) with store {store.id}")
    else:
        click.echo(f"PASS Using existing merchant: {merchant.business_name} (ID: {merchant.id})")

    if db.session.query(TopupPackage).count() == 0:
        packages = [
            ("Starter", 10000, None, None),
            ("Standard", 50000, 2500, None),
            ("Pro", 100000, None, 10),
        ]
        for order, (name, amount, bonus_amount, bonus_percent) in enumerate(packages):
            db.session.add(TopupPackage(
                name=name, amount=amount, bonus_amount=bonus_amount,
                bonus_percent=bonus_percent, display_order=order, is_active=True,
            ))
        db.session.commit()
        click.echo(f"PASS Created {len(packages)} top-up packages")

    click.echo("\nUSERS Creating demo accounts...")
    try:
        _ensure_account("admin@airctt.local", ROLE_ADMIN)
        _ensure_account("consumer@airctt.local", ROLE_CONSUMER)
        _ensure_account("merchant@airctt.local", ROLE_MERCHANT, merchant_id=merchant.id)
    except ServiceError as e:
        raise click.ClickException(str(e))

    click.echo("\n" + "=" * 60)
    click.echo("DONE Demo data ready")
    click.echo("=" * 60)
    click.echo(f"\nDemo credentials (password {DEMO_PASSWORD}):")
    click.echo("   admin@airctt.local / consumer@airctt.local / merchant@airctt.local")


@click.group('accounts')
def accounts_group():
    """Account management commands."""


@accounts_group.command('create')
@click.option('--email', prompt=True, help='Login email')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(ROLES, case_sensitive=False), prompt=True, help='Account role')
@click.option('--merchant-id', type=int, default=None, help='Merchant for MERCHANT accounts')
@with_appcontext
def create_account_cli(email, password, role, merchant_id):
    """Create an account (admin accounts can only be created here)."""
    try:
        account = create_account(email, password, role.upper(), merchant_id=merchant_id)
    except PasswordValidationError as e:
        raise click.ClickException(f"Password validation failed: {str(e)}")
    except ServiceError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created account {account.email} (ID: {account.id}, role {account.role})")


@click.group('wallets')
def wallets_group():
    """Wallet ledger inspection."""


@wallets_group.command('verify-ledger')
@click.option('--wallet-id', type=int, default=None, help='Check a single wallet')
@with_appcontext
def verify_ledger_cli(wallet_id):
    """Check per-row identity, chain continuity and balance totals."""
    violations = wallet_service.verify_ledger(wallet_id)
    if not violations:
        click.echo("PASS Ledger is consistent")
        return
    for v in violations:
        click.echo(f"FAIL wallet {v['wallet_id']} tx {v['tx_id']}: {v['problem']}")
    raise SystemExit(1)


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('purge-sessions')
@with_appcontext
def purge_sessions_cli():
    """Delete expired and revoked session tokens."""
    deleted = session_service.purge_expired_sessions()
    click.echo(f"PASS Deleted {deleted} session tokens")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(accounts_group)
    app.cli.add_command(wallets_group)
    app.cli.add_command(maintenance_group)
