"""创建 tenants 表 / 集合"""
import sqlalchemy as sa
from saas_app.core.constants import TENANT_STATUSES
from saas_app.migrations.document_schema import drop_collection, ensure_collection

TENANT_SCHEMA = {
    "bsonType": "object",
    "required": ["id", "name", "subdomain", "database_name"],
    "properties": {
        "id": {"bsonType": ["int", "long"], "description": "关系型库中的租户ID"},
        "name": {"bsonType": "string"},
        "subdomain": {"bsonType": "string"},
        "database_name": {"bsonType": "string"},
        "status": {"enum": list(TENANT_STATUSES)},
        "settings": {"bsonType": "object"},
        "created_at": {"bsonType": "date"},
        "updated_at": {"bsonType": "date"},
    },
}


def upgrade_relational(op):
    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("subdomain", sa.String(255), nullable=False),
        sa.Column("database_name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=True, server_default="active"),
        sa.Column("settings", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_tenants_subdomain", "tenants", ["subdomain"], unique=True)
    op.create_index("ix_tenants_status", "tenants", ["status"])


def downgrade_relational(op):
    op.drop_table("tenants")


async def upgrade_document(db, schema_validation):
    collection = await ensure_collection(db, "tenants", TENANT_SCHEMA, schema_validation)
    await collection.create_index("subdomain", unique=True)
    await collection.create_index("status")
    await collection.create_index("id", unique=True)


async def downgrade_document(db):
    await drop_collection(db, "tenants")
