"""创建 subscriptions 表 / 集合"""
import sqlalchemy as sa
from saas_app.core.constants import BILLING_CYCLES, PLAN_TYPES, SUBSCRIPTION_STATUSES
from saas_app.migrations.document_schema import drop_collection, ensure_collection

SUBSCRIPTION_SCHEMA = {
    "bsonType": "object",
    "required": ["tenant_id", "plan_name", "plan_type", "price", "current_period_start", "current_period_end"],
    "properties": {
        "tenant_id": {"bsonType": ["int", "long"]},
        "plan_name": {"bsonType": "string"},
        "plan_type": {"enum": list(PLAN_TYPES)},
        "status": {"enum": list(SUBSCRIPTION_STATUSES)},
        "billing_cycle": {"enum": list(BILLING_CYCLES)},
        "price": {"bsonType": ["double", "int", "decimal"]},
        "currency": {"bsonType": "string"},
        "max_users": {"bsonType": ["int", "long"]},
        "max_storage": {"bsonType": ["int", "long"]},
        "features": {"bsonType": "object"},
        "trial_ends_at": {"bsonType": "date"},
        "current_period_start": {"bsonType": "date"},
        "current_period_end": {"bsonType": "date"},
        "cancelled_at": {"bsonType": "date"},
        "created_at": {"bsonType": "date"},
        "updated_at": {"bsonType": "date"},
    },
}


def upgrade_relational(op):
    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("plan_name", sa.String(255), nullable=False),
        sa.Column("plan_type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=True, server_default="active"),
        sa.Column("billing_cycle", sa.String(20), nullable=True, server_default="monthly"),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(3), nullable=True, server_default="USD"),
        sa.Column("max_users", sa.Integer(), nullable=True),
        sa.Column("max_storage", sa.BigInteger(), nullable=True),
        sa.Column("features", sa.JSON(), nullable=True),
        sa.Column("trial_ends_at", sa.DateTime(), nullable=True),
        sa.Column("current_period_start", sa.DateTime(), nullable=False),
        sa.Column("current_period_end", sa.DateTime(), nullable=False),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], onupdate="CASCADE", ondelete="CASCADE"),
    )
    op.create_index("ix_subscriptions_tenant_id", "subscriptions", ["tenant_id"])
    op.create_index("ix_subscriptions_status", "subscriptions", ["status"])
    op.create_index("ix_subscriptions_plan_type", "subscriptions", ["plan_type"])


def downgrade_relational(op):
    op.drop_table("subscriptions")


async def upgrade_document(db, schema_validation):
    collection = await ensure_collection(db, "subscriptions", SUBSCRIPTION_SCHEMA, schema_validation)
    await collection.create_index("tenant_id")
    await collection.create_index("status")
    await collection.create_index("plan_type")


async def downgrade_document(db):
    await drop_collection(db, "subscriptions")
