"""End-to-end record writes against an in-memory database.

Covers relationship actions on create/update/delete, cascade removal of
child rows, and rollback of the whole write when any step fails.
"""

import re

import pytest
import pytest_asyncio
import sqlalchemy as sa

from tablekit.core import SchemaLoader, SchemaService
from tablekit.storage import (
    CascadeDeleteError,
    RecordNotFoundError,
    RecordService,
    RelationshipProcessingError,
    create_engine,
)


@pytest_asyncio.fixture
async def records(seeded_engine, schema_service, settings):
    return RecordService(seeded_engine, schema_service, current_user=lambda: 7, settings=settings)


async def _fetch(engine, sql, **params):
    async with engine.connect() as conn:
        result = await conn.execute(sa.text(sql), params)
        return [dict(row._mapping) for row in result]


async def _product_ids(engine, order_id):
    rows = await _fetch(
        engine,
        "SELECT product_id FROM order_products WHERE order_id = :id ORDER BY product_id",
        id=order_id,
    )
    return [row["product_id"] for row in rows]


async def _add_items(engine, order_id, count):
    async with engine.begin() as conn:
        for index in range(count):
            await conn.execute(
                sa.text(
                    "INSERT INTO items (order_id, sku, quantity) VALUES (:order_id, :sku, 1)"
                ),
                {"order_id": order_id, "sku": f"SKU-{order_id}-{index}"},
            )


class TestCreate:
    """Test record creation with on_create relationship actions."""

    @pytest.mark.asyncio
    async def test_create_returns_row(self, records):
        record = await records.create("orders", {"customer": "Ada", "status": "new", "bogus": 1})

        assert record["id"] == 1
        assert record["customer"] == "Ada"
        assert record["created_at"] is not None
        assert record["deleted_at"] is None
        assert "bogus" not in record

    @pytest.mark.asyncio
    async def test_create_attaches_with_pivot_placeholders(self, records, seeded_engine):
        record = await records.create("orders", {"customer": "Ada"})

        pivot = await _fetch(
            seeded_engine, "SELECT * FROM order_products WHERE order_id = :id", id=record["id"]
        )
        assert len(pivot) == 1
        assert pivot[0]["product_id"] == 1
        assert pivot[0]["added_by"] == 7
        assert re.fullmatch(r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}", pivot[0]["added_at"])

    @pytest.mark.asyncio
    async def test_failed_attach_rolls_back_create(
        self, records, seeded_engine, schema_service, schema_dir, schemas, schema_writer
    ):
        document = schemas["orders"]
        document["relationships"][0]["pivot_table"] = "order_tags"
        schema_writer(schema_dir, "orders", document, "json")
        await schema_service.clear_all_cache()

        with pytest.raises(RelationshipProcessingError) as exc_info:
            await records.create("orders", {"customer": "Ada"})

        assert exc_info.value.relationship == "products"
        assert await _fetch(seeded_engine, "SELECT id FROM orders") == []


class TestUpdate:
    """Test record updates with sync."""

    @pytest.mark.asyncio
    async def test_update_syncs_related_set(self, records, seeded_engine):
        order = await records.create("orders", {"customer": "Ada"})

        await records.update("orders", order["id"], {"products_ids": [1, 2, 3]})
        assert await _product_ids(seeded_engine, order["id"]) == [1, 2, 3]

        updated = await records.update(
            "orders", str(order["id"]), {"customer": "Grace", "products_ids": ["2", "4"]}
        )

        assert updated["customer"] == "Grace"
        assert await _product_ids(seeded_engine, order["id"]) == [2, 4]

    @pytest.mark.asyncio
    async def test_sync_keeps_pivot_data_of_unchanged_rows(self, records, seeded_engine):
        order = await records.create("orders", {"customer": "Ada"})

        await records.update("orders", order["id"], {"products_ids": [1, 5]})

        pivot = await _fetch(
            seeded_engine,
            "SELECT product_id, added_by FROM order_products WHERE order_id = :id "
            "ORDER BY product_id",
            id=order["id"],
        )
        assert pivot == [{"product_id": 1, "added_by": 7}, {"product_id": 5, "added_by": None}]

    @pytest.mark.asyncio
    async def test_update_without_sync_field_keeps_relations(self, records, seeded_engine):
        order = await records.create("orders", {"customer": "Ada"})

        await records.update("orders", order["id"], {"status": "paid"})

        assert await _product_ids(seeded_engine, order["id"]) == [1]

    @pytest.mark.asyncio
    async def test_update_with_empty_list_detaches_all(self, records, seeded_engine):
        order = await records.create("orders", {"customer": "Ada"})

        await records.update("orders", order["id"], {"products_ids": []})

        assert await _product_ids(seeded_engine, order["id"]) == []

    @pytest.mark.asyncio
    async def test_update_missing_record(self, records):
        with pytest.raises(RecordNotFoundError):
            await records.update("orders", 99, {"customer": "Nobody"})


class TestDelete:
    """Test deletes with on_delete actions and cascades."""

    @pytest.mark.asyncio
    async def test_soft_delete_cascades_softly(self, records, seeded_engine):
        order = await records.create("orders", {"customer": "Ada"})
        await _add_items(seeded_engine, order["id"], 3)

        result = await records.delete("orders", order["id"])

        assert result.soft is True
        assert result.cascaded == 3
        orders = await _fetch(seeded_engine, "SELECT deleted_at FROM orders")
        assert orders[0]["deleted_at"] is not None
        items = await _fetch(seeded_engine, "SELECT deleted_at FROM items")
        assert len(items) == 3
        assert all(item["deleted_at"] is not None for item in items)
        assert await _product_ids(seeded_engine, order["id"]) == []

    @pytest.mark.asyncio
    async def test_hard_delete_cascades_hard(self, records, seeded_engine):
        order = await records.create("orders", {"customer": "Ada"})
        other = await records.create("orders", {"customer": "Grace"})
        await _add_items(seeded_engine, order["id"], 2)
        await _add_items(seeded_engine, other["id"], 1)

        result = await records.delete("orders", order["id"], soft=False)

        assert result.soft is False
        assert result.cascaded == 2
        assert await _fetch(seeded_engine, "SELECT id FROM orders") == [{"id": other["id"]}]
        assert await _fetch(seeded_engine, "SELECT order_id FROM items") == [
            {"order_id": other["id"]}
        ]

    @pytest.mark.asyncio
    async def test_hard_delete_removes_trashed_children(self, records, seeded_engine):
        order = await records.create("orders", {"customer": "Ada"})
        await _add_items(seeded_engine, order["id"], 2)
        async with seeded_engine.begin() as conn:
            await conn.execute(
                sa.text("UPDATE items SET deleted_at = '2024-01-01 00:00:00' WHERE sku = :sku"),
                {"sku": f"SKU-{order['id']}-0"},
            )

        result = await records.delete("orders", order["id"], soft=False)

        assert result.cascaded == 2
        assert await _fetch(seeded_engine, "SELECT id FROM orders") == []
        assert await _fetch(seeded_engine, "SELECT id FROM items") == []

    @pytest.mark.asyncio
    async def test_soft_delete_keeps_earlier_child_deletion_time(self, records, seeded_engine):
        order = await records.create("orders", {"customer": "Ada"})
        await _add_items(seeded_engine, order["id"], 2)
        async with seeded_engine.begin() as conn:
            await conn.execute(
                sa.text("UPDATE items SET deleted_at = '2024-01-01 00:00:00' WHERE sku = :sku"),
                {"sku": f"SKU-{order['id']}-0"},
            )

        result = await records.delete("orders", order["id"])

        assert result.cascaded == 1
        items = await _fetch(seeded_engine, "SELECT sku, deleted_at FROM items ORDER BY sku")
        assert items[0]["deleted_at"] == "2024-01-01 00:00:00"
        assert items[1]["deleted_at"] is not None
        assert items[1]["deleted_at"] != "2024-01-01 00:00:00"

    @pytest.mark.asyncio
    async def test_children_resolved_under_requested_connection(
        self, records, seeded_engine, schema_dir, schemas, schema_writer
    ):
        document = schemas["items"]
        document["soft_delete"] = False
        schema_writer(schema_dir / "archive", "items", document)
        order = await records.create("orders", {"customer": "Ada"})
        await _add_items(seeded_engine, order["id"], 2)

        result = await records.delete("orders", order["id"], connection="archive")

        assert result.soft is True
        assert result.cascaded == 2
        assert await _fetch(seeded_engine, "SELECT id FROM items") == []

    @pytest.mark.asyncio
    async def test_hard_cascade_mode(
        self, records, seeded_engine, schema_service, schema_dir, schemas, schema_writer
    ):
        document = schemas["orders"]
        document["details"][0]["cascade_delete_mode"] = "hard"
        schema_writer(schema_dir, "orders", document, "json")
        await schema_service.clear_all_cache()
        order = await records.create("orders", {"customer": "Ada"})
        await _add_items(seeded_engine, order["id"], 2)

        result = await records.delete("orders", order["id"])

        assert result.soft is True
        assert await _fetch(seeded_engine, "SELECT id FROM items") == []

    @pytest.mark.asyncio
    async def test_cascade_disabled(
        self, records, seeded_engine, schema_service, schema_dir, schemas, schema_writer
    ):
        document = schemas["orders"]
        document["details"][0]["cascade_delete"] = False
        schema_writer(schema_dir, "orders", document, "json")
        await schema_service.clear_all_cache()
        order = await records.create("orders", {"customer": "Ada"})
        await _add_items(seeded_engine, order["id"], 2)

        result = await records.delete("orders", order["id"], soft=False)

        assert result.cascaded == 0
        items = await _fetch(seeded_engine, "SELECT deleted_at FROM items")
        assert [item["deleted_at"] for item in items] == [None, None]

    @pytest.mark.asyncio
    async def test_missing_child_schema_rolls_back(
        self, records, seeded_engine, schema_service, schema_dir, schemas, schema_writer
    ):
        document = schemas["orders"]
        document["details"].append({"model": "shipments", "foreign_key": "order_id"})
        schema_writer(schema_dir, "orders", document, "json")
        await schema_service.clear_all_cache()
        order = await records.create("orders", {"customer": "Ada"})
        await _add_items(seeded_engine, order["id"], 2)

        with pytest.raises(CascadeDeleteError) as exc_info:
            await records.delete("orders", order["id"])

        assert exc_info.value.child_model == "shipments"
        orders = await _fetch(seeded_engine, "SELECT deleted_at FROM orders")
        assert orders == [{"deleted_at": None}]
        items = await _fetch(seeded_engine, "SELECT deleted_at FROM items")
        assert [item["deleted_at"] for item in items] == [None, None]
        assert await _product_ids(seeded_engine, order["id"]) == [1]

    @pytest.mark.asyncio
    async def test_delete_missing_record(self, records):
        with pytest.raises(RecordNotFoundError):
            await records.delete("orders", 42)

    @pytest.mark.asyncio
    async def test_soft_deleted_record_not_found_again(self, records):
        order = await records.create("orders", {"customer": "Ada"})
        await records.delete("orders", order["id"])

        with pytest.raises(RecordNotFoundError):
            await records.delete("orders", order["id"])

    @pytest.mark.asyncio
    async def test_model_without_soft_deletes_deletes_physically(self, records, seeded_engine):
        result = await records.delete("roles", 2, soft=True)

        assert result.soft is False
        assert await _fetch(seeded_engine, "SELECT id FROM roles") == [{"id": 1}]

    @pytest.mark.asyncio
    async def test_children_without_soft_deletes_hard_deleted(
        self, records, seeded_engine, schema_service, schema_dir, schemas, schema_writer
    ):
        document = schemas["items"]
        document["soft_delete"] = False
        schema_writer(schema_dir, "items", document)
        await schema_service.clear_all_cache()
        order = await records.create("orders", {"customer": "Ada"})
        await _add_items(seeded_engine, order["id"], 3)

        result = await records.delete("orders", order["id"])

        assert result.soft is True
        assert result.cascaded == 3
        assert await _fetch(seeded_engine, "SELECT id FROM items") == []
        orders = await _fetch(seeded_engine, "SELECT deleted_at FROM orders")
        assert orders[0]["deleted_at"] is not None


class TestOrderItemsScenario:
    """Creating an order attaches the configured item with pivot data."""

    @pytest.fixture
    def service(self, tmp_path, schemas, schema_writer, settings):
        directory = tmp_path / "scenario"
        orders = schemas["orders"]
        orders["details"] = []
        orders["relationships"] = [
            {
                "name": "items",
                "type": "many_to_many",
                "pivot_table": "order_items",
                "foreign_key": "order_id",
                "related_key": "item_id",
                "actions": {
                    "on_create": {"attach": [{"related_id": 7, "pivot_data": {"qty": 2}}]}
                },
            }
        ]
        schema_writer(directory, "orders", orders)
        schema_writer(directory, "items", schemas["items"])
        return SchemaService(loader=SchemaLoader(directory), settings=settings)

    @pytest_asyncio.fixture
    async def scenario_engine(self, service, settings):
        engine = create_engine(settings.database_url)
        metadata = sa.MetaData()
        sa.Table(
            "order_items",
            metadata,
            sa.Column("order_id", sa.Integer),
            sa.Column("item_id", sa.Integer),
            sa.Column("qty", sa.Integer),
        )
        async with engine.begin() as conn:
            orders = await service.get_model_instance("orders")
            await conn.run_sync(orders.table.create)
            await conn.run_sync(metadata.create_all)
        yield engine
        await engine.dispose()

    @pytest.mark.asyncio
    async def test_create_attaches_item(self, service, scenario_engine):
        records = RecordService(scenario_engine, service)

        order = await records.create("orders", {"customer": "Ada"})

        pivot = await _fetch(scenario_engine, "SELECT * FROM order_items")
        assert pivot == [{"order_id": order["id"], "item_id": 7, "qty": 2}]
