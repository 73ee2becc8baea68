"""Shared fixtures: schema documents on disk and an in-memory database."""

import copy
import json
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
import sqlalchemy as sa
import yaml

from tablekit.config import TablekitConfig
from tablekit.core import SchemaLoader, SchemaService
from tablekit.storage import create_engine

ORDERS_SCHEMA: dict[str, Any] = {
    "model": "orders",
    "table": "orders",
    "title": "Orders",
    "title_field": "customer",
    "soft_delete": True,
    "permissions": {
        "read": "view_orders",
        "create": "create_order",
        "update": "update_order",
        "delete": "delete_order",
    },
    "default_sort": {"id": "asc"},
    "fields": {
        "id": {"type": "integer", "auto_increment": True, "readonly": True, "label": "ID"},
        "customer": {
            "type": "string",
            "label": "Customer",
            "required": True,
            "sortable": True,
            "filterable": True,
            "validation": {"length": {"min": 2, "max": 100}},
        },
        "status": {"type": "string", "label": "Status", "default": "new"},
        "notes": {"type": "text", "label": "Notes", "listable": False},
    },
    "details": [
        {"model": "items", "foreign_key": "order_id", "title": "Items"},
    ],
    "relationships": [
        {
            "name": "products",
            "type": "many_to_many",
            "pivot_table": "order_products",
            "foreign_key": "order_id",
            "related_key": "product_id",
            "actions": {
                "on_create": {
                    "attach": [
                        {
                            "related_id": 1,
                            "pivot_data": {"added_at": "now", "added_by": "current_user"},
                        }
                    ]
                },
                "on_update": {"sync": True},
                "on_delete": {"detach": "all"},
            },
        }
    ],
}

ITEMS_SCHEMA: dict[str, Any] = {
    "model": "items",
    "table": "items",
    "soft_delete": True,
    "timestamps": False,
    "fields": {
        "id": {"type": "integer", "auto_increment": True, "readonly": True},
        "order_id": {"type": "integer", "label": "Order"},
        "sku": {"type": "string", "filterable": True},
        "quantity": {"type": "integer"},
    },
}

PRODUCTS_SCHEMA: dict[str, Any] = {
    "model": "products",
    "table": "products",
    "soft_delete": True,
    "timestamps": False,
    "fields": {
        "id": {"type": "integer", "auto_increment": True, "readonly": True},
        "name": {"type": "string", "sortable": True, "filterable": True},
        "code": {"type": "string", "filterable": True},
        "price": {"type": "float", "sortable": True},
    },
}

USERS_SCHEMA: dict[str, Any] = {
    "model": "users",
    "table": "users",
    "timestamps": False,
    "fields": {
        "id": {"type": "integer", "auto_increment": True, "readonly": True},
        "user_name": {"type": "string", "filterable": True},
        "password": {"type": "password"},
    },
    "relationships": [
        {
            "name": "roles",
            "pivot_table": "role_users",
            "foreign_key": "user_id",
            "related_key": "role_id",
        },
        {
            "name": "permissions",
            "through": "roles",
            "first_pivot_table": "role_users",
            "first_foreign_key": "user_id",
            "first_related_key": "role_id",
            "second_pivot_table": "permission_roles",
            "second_foreign_key": "role_id",
            "second_related_key": "permission_id",
        },
    ],
}

ROLES_SCHEMA: dict[str, Any] = {
    "model": "roles",
    "table": "roles",
    "timestamps": False,
    "fields": {
        "id": {"type": "integer", "auto_increment": True, "readonly": True},
        "name": {"type": "string", "filterable": True},
    },
}

PERMISSIONS_SCHEMA: dict[str, Any] = {
    "model": "permissions",
    "table": "permissions",
    "timestamps": False,
    "fields": {
        "id": {"type": "integer", "auto_increment": True, "readonly": True},
        "slug": {"type": "string", "filterable": True, "sortable": True},
    },
}

ALL_SCHEMAS = {
    "orders": ORDERS_SCHEMA,
    "items": ITEMS_SCHEMA,
    "products": PRODUCTS_SCHEMA,
    "users": USERS_SCHEMA,
    "roles": ROLES_SCHEMA,
    "permissions": PERMISSIONS_SCHEMA,
}

pivot_metadata = sa.MetaData()

order_products = sa.Table(
    "order_products",
    pivot_metadata,
    sa.Column("order_id", sa.Integer, nullable=False),
    sa.Column("product_id", sa.Integer, nullable=False),
    sa.Column("added_at", sa.String, nullable=True),
    sa.Column("added_by", sa.Integer, nullable=True),
)

role_users = sa.Table(
    "role_users",
    pivot_metadata,
    sa.Column("user_id", sa.Integer, nullable=False),
    sa.Column("role_id", sa.Integer, nullable=False),
)

permission_roles = sa.Table(
    "permission_roles",
    pivot_metadata,
    sa.Column("role_id", sa.Integer, nullable=False),
    sa.Column("permission_id", sa.Integer, nullable=False),
)


def write_schema(directory: Path, name: str, document: dict[str, Any], fmt: str = "yaml") -> Path:
    """Write a schema document as YAML or JSON."""
    directory.mkdir(parents=True, exist_ok=True)
    if fmt == "json":
        path = directory / f"{name}.json"
        path.write_text(json.dumps(document, indent=2))
    else:
        path = directory / f"{name}.yaml"
        path.write_text(yaml.safe_dump(document, sort_keys=False))
    return path


@pytest.fixture
def schemas() -> dict[str, dict[str, Any]]:
    """Fresh copies of every test schema document, keyed by model."""
    return copy.deepcopy(ALL_SCHEMAS)


@pytest.fixture
def schema_writer():
    return write_schema


@pytest.fixture
def schema_dir(tmp_path: Path) -> Path:
    """Directory holding every test schema (orders as JSON, the rest as YAML)."""
    directory = tmp_path / "schemas"
    for name, document in ALL_SCHEMAS.items():
        write_schema(directory, name, document, "json" if name == "orders" else "yaml")
    return directory


@pytest.fixture
def settings(schema_dir: Path) -> TablekitConfig:
    return TablekitConfig(
        schema_path=str(schema_dir),
        database_url="sqlite+aiosqlite:///:memory:",
        cache_enabled=False,
        default_page_size=25,
        max_page_size=100,
    )


@pytest.fixture
def schema_service(settings: TablekitConfig) -> SchemaService:
    return SchemaService(loader=SchemaLoader(settings.schema_path), settings=settings)


@pytest_asyncio.fixture
async def engine(schema_service: SchemaService, settings: TablekitConfig):
    """In-memory database with every model table and pivot table created."""
    engine = create_engine(settings.database_url)
    async with engine.begin() as conn:
        for model in ALL_SCHEMAS:
            instance = await schema_service.get_model_instance(model)
            await conn.run_sync(instance.table.create)
        await conn.run_sync(pivot_metadata.create_all)

    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def seeded_engine(engine):
    """Database with products, users, roles and permissions rows."""
    async with engine.begin() as conn:
        await conn.execute(
            sa.text("INSERT INTO products (id, name, code, price) VALUES (:id, :name, :code, :price)"),
            [
                {"id": 1, "name": "Apple", "code": "FR-1", "price": 1.0},
                {"id": 2, "name": "Banana", "code": "FR-2", "price": 0.5},
                {"id": 3, "name": "Cherry", "code": "FR-3", "price": 3.0},
                {"id": 4, "name": "Date", "code": "DR-4", "price": 4.5},
                {"id": 5, "name": "Eggplant", "code": "VG-5", "price": 2.0},
            ],
        )
        await conn.execute(
            sa.text("INSERT INTO users (id, user_name) VALUES (:id, :user_name)"),
            [{"id": 1, "user_name": "alice"}, {"id": 2, "user_name": "bob"}],
        )
        await conn.execute(
            sa.text("INSERT INTO roles (id, name) VALUES (:id, :name)"),
            [{"id": 1, "name": "admin"}, {"id": 2, "name": "editor"}],
        )
        await conn.execute(
            sa.text("INSERT INTO permissions (id, slug) VALUES (:id, :slug)"),
            [
                {"id": 1, "slug": "edit_pages"},
                {"id": 2, "slug": "delete_pages"},
                {"id": 3, "slug": "view_reports"},
            ],
        )
        await conn.execute(
            sa.insert(role_users),
            [{"user_id": 1, "role_id": 1}, {"user_id": 1, "role_id": 2}],
        )
        # edit_pages is granted by both roles
        await conn.execute(
            sa.insert(permission_roles),
            [
                {"role_id": 1, "permission_id": 1},
                {"role_id": 1, "permission_id": 2},
                {"role_id": 2, "permission_id": 1},
                {"role_id": 2, "permission_id": 3},
            ],
        )
    return engine
