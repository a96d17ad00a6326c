"""创建 users 表 / 集合"""
import sqlalchemy as sa
from saas_app.core.constants import USER_ROLES, USER_STATUSES
from saas_app.migrations.document_schema import drop_collection, ensure_collection

USER_SCHEMA = {
    "bsonType": "object",
    "required": ["tenant_id", "name", "email"],
    "properties": {
        "tenant_id": {"bsonType": ["int", "long"]},
        "name": {"bsonType": "string"},
        "email": {"bsonType": "string"},
        "password": {"bsonType": "string"},
        "age": {"bsonType": ["int", "long", "double"]},
        "profession": {"bsonType": "string"},
        "summary": {"bsonType": "string"},
        "google_id": {"bsonType": "string"},
        "avatar": {"bsonType": "string"},
        "role": {"enum": list(USER_ROLES)},
        "status": {"enum": list(USER_STATUSES)},
        "email_verified": {"bsonType": "bool"},
        "last_login": {"bsonType": "date"},
        "created_at": {"bsonType": "date"},
        "updated_at": {"bsonType": "date"},
    },
}


def upgrade_relational(op):
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password", sa.String(255), nullable=True),
        sa.Column("age", sa.Integer(), nullable=True),
        sa.Column("profession", sa.String(255), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("google_id", sa.String(255), nullable=True),
        sa.Column("avatar", sa.String(512), nullable=True),
        sa.Column("role", sa.String(20), nullable=True, server_default="user"),
        sa.Column("status", sa.String(20), nullable=True, server_default="active"),
        sa.Column("email_verified", sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column("last_login", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], onupdate="CASCADE", ondelete="CASCADE"),
        sa.UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),
    )
    op.create_index("ix_users_tenant_id", "users", ["tenant_id"])
    op.create_index("ix_users_email", "users", ["email"])
    op.create_index("ix_users_google_id", "users", ["google_id"])


def downgrade_relational(op):
    op.drop_table("users")


async def upgrade_document(db, schema_validation):
    collection = await ensure_collection(db, "users", USER_SCHEMA, schema_validation)
    await collection.create_index("tenant_id")
    await collection.create_index("email")
    await collection.create_index("google_id")
    await collection.create_index([("tenant_id", 1), ("email", 1)], unique=True)


async def downgrade_document(db):
    await drop_collection(db, "users")
