"""
Schema of a tenant store.

Tenant stores hold the user's non-billing data. The metadata here is kept
apart from ``Base.metadata`` so billing tables never end up in a tenant
store and nothing in a tenant store can reference billing rows.
"""

from sqlalchemy import Boolean, Column, Index, Integer, MetaData, String, Table, Text

tenant_metadata = MetaData()

profile = Table(
    "profile",
    tenant_metadata,
    Column("key", String, primary_key=True),
    Column("value", Text, nullable=False),
    Column("updated_at", String, nullable=False),
)

goals = Table(
    "goals",
    tenant_metadata,
    Column("id", String, primary_key=True),
    Column("original_text", Text, nullable=False),
    Column("smart_text", Text, nullable=False),
    Column("category", String),
    Column("status", String, server_default="active"),
    Column("progress", Integer, server_default="0"),
    Column("milestones", Text),
    Column("notion_page_id", String),
    Column("created_at", String, nullable=False),
    Column("updated_at", String, nullable=False),
    Index("idx_goals_status", "status"),
)

conversations = Table(
    "conversations",
    tenant_metadata,
    Column("id", String, primary_key=True),
    Column("role", String, nullable=False),
    Column("content", Text, nullable=False),
    Column("tokens_used", Integer),
    Column("provider", String),
    Column("created_at", String, nullable=False),
    Index("idx_conversations_created", "created_at"),
)

feature_settings = Table(
    "feature_settings",
    tenant_metadata,
    Column("feature", String, primary_key=True),
    Column("enabled", Boolean, server_default="1"),
    Column("config", Text),
)

TENANT_TABLES = tuple(tenant_metadata.tables)
