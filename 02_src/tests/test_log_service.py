"""Tests for LogService."""

from datetime import datetime, timedelta, timezone

from hubble.logs import LogService, to_display_time
from hubble.models import DIAGNOSTIC_LABEL, DatabaseQuery, GeneralLog, LogFilter

UTC_NOON = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


class TestDisplayTime:
    """Tests for time zone conversion."""

    def test_converts_to_zone(self):
        local = to_display_time(UTC_NOON, "Europe/Madrid")

        assert local.hour == 13
        assert local == UTC_NOON

    def test_unknown_zone_leaves_value(self):
        assert to_display_time(UTC_NOON, "Mars/Olympus_Mons") is UTC_NOON
        assert to_display_time(UTC_NOON, "") is UTC_NOON

    def test_zone_directory_key_leaves_value(self):
        assert to_display_time(UTC_NOON, "America") is UTC_NOON


class TestLogService:
    """Tests for listing and lookup."""

    async def test_list_page(self, storage, settings):
        for i in range(5):
            await storage.create_log(GeneralLog(timestamp=UTC_NOON + timedelta(minutes=i)))
        service = LogService(storage, settings)

        page = await service.list_logs(LogFilter(page=2, page_size=2))

        assert page.total_count == 5
        assert page.total_pages == 3
        assert [log.timestamp.minute for log in page.logs] == [2, 1]
        assert page.has_next_page and page.has_previous_page

    async def test_timestamps_in_display_zone(self, storage, settings, config):
        config.time_zone_id = "America/New_York"
        query = DatabaseQuery(
            database_type="sqlite", database_name="main", query="SELECT 1", timestamp=UTC_NOON
        )
        log_id = await storage.create_log(
            GeneralLog(timestamp=UTC_NOON, database_queries=[query])
        )
        service = LogService(storage, settings)

        log, _ = await service.get_log(log_id)

        assert log.timestamp.hour == 7
        assert log.database_queries[0].timestamp.hour == 7
        # Stored value is untouched
        assert (await storage.get_log(log_id)).timestamp.tzinfo == timezone.utc

    async def test_bad_zone_returns_utc(self, storage, settings, config):
        config.time_zone_id = "Not/AZone"
        await storage.create_log(GeneralLog(timestamp=UTC_NOON))
        service = LogService(storage, settings)

        page = await service.list_logs(LogFilter())

        assert page.logs[0].timestamp.hour == 12

    async def test_zone_directory_key_returns_utc(self, storage, settings, config):
        config.time_zone_id = "America"
        log_id = await storage.create_log(GeneralLog(timestamp=UTC_NOON))
        service = LogService(storage, settings)

        log, related = await service.get_log(log_id)

        assert log.timestamp == UTC_NOON
        assert related == []

    async def test_get_log_with_related(self, storage, settings):
        root_id = await storage.create_log(GeneralLog(method="GET"))
        child = GeneralLog(controller_name=DIAGNOSTIC_LABEL, related_request_id=root_id)
        await storage.create_log(child)
        service = LogService(storage, settings)

        log, related = await service.get_log(root_id)

        assert log.id == root_id
        assert [r.id for r in related] == [child.id]

    async def test_get_missing(self, storage, settings):
        assert await LogService(storage, settings).get_log("nope") is None

    async def test_delete_all(self, storage, settings):
        await storage.create_log(GeneralLog())
        service = LogService(storage, settings)

        assert await service.delete_all_logs() == 1
        assert (await service.list_logs(LogFilter())).total_count == 0
