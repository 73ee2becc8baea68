"""Unit tests for relationship lifecycle actions."""

from unittest.mock import AsyncMock, Mock, call
import re

import pytest

from tablekit.core import RelationshipEvent
from tablekit.storage.exceptions import RelationshipProcessingError
from tablekit.storage.relationship_processor import RelationshipActionProcessor


def _schema(actions, name="roles"):
    return {"model": "users", "relationships": [{"name": name, "actions": actions}]}


@pytest.fixture
def query():
    query = Mock()
    query.descriptor.name = "roles"
    query.attach = AsyncMock()
    query.detach = AsyncMock(return_value=2)
    query.sync = AsyncMock(return_value={"attached": [], "detached": []})
    return query


@pytest.fixture
def model(query):
    model = Mock()
    model.relationship.return_value = query
    return model


@pytest.fixture
def conn():
    return AsyncMock()


@pytest.fixture
def processor():
    return RelationshipActionProcessor(current_user=lambda: 42)


class TestAttach:
    """Test attach actions."""

    @pytest.mark.asyncio
    async def test_attach_each_entry(self, processor, model, query, conn):
        schema = _schema(
            {"on_create": {"attach": [{"related_id": 1}, {"related_id": 2, "pivot_data": {"x": 1}}]}}
        )

        await processor.process(conn, model, schema, 10, {}, RelationshipEvent.ON_CREATE)

        assert query.attach.await_args_list == [
            call(conn, 10, 1, {}),
            call(conn, 10, 2, {"x": 1}),
        ]

    @pytest.mark.asyncio
    async def test_malformed_entries_skipped(self, processor, model, query, conn):
        schema = _schema({"on_create": {"attach": ["3", {"pivot_data": {}}, {"related_id": 4}]}})

        await processor.process(conn, model, schema, 10, {}, "on_create")

        query.attach.assert_awaited_once_with(conn, 10, 4, {})

    @pytest.mark.asyncio
    async def test_non_list_attach_warns(self, processor, model, query, conn, monkeypatch):
        log = Mock()
        monkeypatch.setattr("tablekit.storage.relationship_processor.logger", log)
        schema = _schema({"on_create": {"attach": {"related_id": 1}}})

        await processor.process(conn, model, schema, 10, {}, RelationshipEvent.ON_CREATE)

        query.attach.assert_not_awaited()
        log.warning.assert_called_once()
        assert log.warning.call_args.args == ("Invalid attach configuration",)
        assert log.warning.call_args.kwargs["config"] == {"related_id": 1}

    @pytest.mark.asyncio
    async def test_other_events_ignored(self, processor, model, query, conn):
        schema = _schema({"on_create": {"attach": [{"related_id": 1}]}})

        await processor.process(conn, model, schema, 10, {}, RelationshipEvent.ON_UPDATE)

        query.attach.assert_not_awaited()
        model.relationship.assert_not_called()


class TestSync:
    """Test sync actions on update."""

    @pytest.mark.asyncio
    async def test_sync_default_field(self, processor, model, query, conn):
        schema = _schema({"on_update": {"sync": True}})

        await processor.process(conn, model, schema, 10, {"roles_ids": [1, "", None, 2]}, "on_update")

        query.sync.assert_awaited_once_with(conn, 10, [1, 2])

    @pytest.mark.asyncio
    async def test_sync_named_field_scalar(self, processor, model, query, conn):
        schema = _schema({"on_update": {"sync": "role_ids"}})

        await processor.process(conn, model, schema, 10, {"role_ids": "3"}, "on_update")

        query.sync.assert_awaited_once_with(conn, 10, ["3"])

    @pytest.mark.asyncio
    async def test_empty_list_clears_relationship(self, processor, model, query, conn):
        schema = _schema({"on_update": {"sync": True}})

        await processor.process(conn, model, schema, 10, {"roles_ids": []}, "on_update")

        query.sync.assert_awaited_once_with(conn, 10, [])

    @pytest.mark.asyncio
    async def test_absent_field_skips_sync(self, processor, model, query, conn):
        schema = _schema({"on_update": {"sync": True}})

        await processor.process(conn, model, schema, 10, {"name": "x"}, "on_update")

        query.sync.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("sync", [False, None])
    async def test_disabled_sync(self, processor, model, query, conn, sync):
        schema = _schema({"on_update": {"sync": sync}})

        await processor.process(conn, model, schema, 10, {"roles_ids": [1]}, "on_update")

        query.sync.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sync_only_on_update(self, processor, model, query, conn):
        schema = _schema({"on_create": {"sync": True}})

        await processor.process(conn, model, schema, 10, {"roles_ids": [1]}, "on_create")

        query.sync.assert_not_awaited()


class TestDetach:
    """Test detach actions."""

    @pytest.mark.asyncio
    async def test_detach_all(self, processor, model, query, conn):
        schema = _schema({"on_delete": {"detach": "all"}})

        await processor.process(conn, model, schema, 10, {}, "on_delete")

        query.detach.assert_awaited_once_with(conn, 10)

    @pytest.mark.asyncio
    async def test_detach_listed(self, processor, model, query, conn):
        schema = _schema({"on_delete": {"detach": [1, 3]}})

        await processor.process(conn, model, schema, 10, {}, "on_delete")

        query.detach.assert_awaited_once_with(conn, 10, [1, 3])

    @pytest.mark.asyncio
    async def test_invalid_detach_config_skipped(self, processor, model, query, conn):
        schema = _schema({"on_delete": {"detach": "some"}})

        await processor.process(conn, model, schema, 10, {}, "on_delete")

        query.detach.assert_not_awaited()


class TestErrors:
    """Failures are wrapped and re-raised."""

    @pytest.mark.asyncio
    async def test_pivot_failure_wrapped(self, processor, model, query, conn):
        failure = RuntimeError("constraint violated")
        query.detach.side_effect = failure
        schema = _schema({"on_delete": {"detach": "all"}})

        with pytest.raises(RelationshipProcessingError) as exc_info:
            await processor.process(conn, model, schema, 10, {}, "on_delete")

        assert exc_info.value.cause is failure
        assert exc_info.value.__cause__ is failure
        assert exc_info.value.relationship == "roles"
        assert exc_info.value.model == "users"

    @pytest.mark.asyncio
    async def test_unknown_relationship_wrapped(self, processor, model, conn):
        model.relationship.side_effect = KeyError("roles")
        schema = _schema({"on_delete": {"detach": "all"}})

        with pytest.raises(RelationshipProcessingError):
            await processor.process(conn, model, schema, 10, {}, "on_delete")

    @pytest.mark.asyncio
    async def test_unknown_event(self, processor, model, conn):
        with pytest.raises(ValueError):
            await processor.process(conn, model, _schema({}), 10, {}, "on_archive")

    @pytest.mark.asyncio
    async def test_unnamed_relationship_skipped(self, processor, model, conn):
        schema = {"model": "users", "relationships": [{"actions": {"on_delete": {"detach": "all"}}}]}

        await processor.process(conn, model, schema, 10, {}, "on_delete")

        model.relationship.assert_not_called()


class TestPivotPlaceholders:
    """Test placeholder substitution in pivot data."""

    def test_placeholders(self, processor):
        result = processor.process_pivot_data(
            {"created_at": "now", "day": "current_date", "user_id": "current_user", "note": "x"}
        )

        assert re.fullmatch(r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}", result["created_at"])
        assert re.fullmatch(r"\d{4}-\d{2}-\d{2}", result["day"])
        assert result["user_id"] == 42
        assert result["note"] == "x"

    def test_no_current_user(self):
        result = RelationshipActionProcessor().process_pivot_data({"user_id": "current_user"})

        assert result == {"user_id": None}
