"""Tests for StatsService."""

from datetime import datetime, timezone

import pytest

from hubble.config import HubbleOptions
from hubble.models import DIAGNOSTIC_METHOD, GeneralLog
from hubble.stats import StatsService

PRUNED_AT = datetime(2024, 5, 1, tzinfo=timezone.utc)


async def seed(storage):
    for status in (200, 201, 404, 503):
        await storage.create_log(GeneralLog(method="GET", status_code=status))
    await storage.create_log(GeneralLog(method=DIAGNOSTIC_METHOD))


class TestStatistics:
    """Tests for statistics snapshots."""

    async def test_recalculate_counts_buckets(self, storage):
        await seed(storage)
        service = StatsService(storage)

        stats = await service.recalculate_statistics()

        assert stats.total_logs == 5
        assert stats.successful_logs == 2
        assert stats.failed_logs == 2
        assert stats.logger_logs == 1

    async def test_get_statistics_computes_when_missing(self, storage):
        await seed(storage)
        service = StatsService(storage)

        stats = await service.get_statistics()

        assert stats.total_logs == 5
        assert (await storage.get_latest_statistics()).id == stats.id

    async def test_recalculate_carries_last_prune_forward(self, storage):
        service = StatsService(storage)
        await service.update_prune_statistics(PRUNED_AT, 7)

        stats = await service.recalculate_statistics()

        assert stats.last_prune.last_prune_date == PRUNED_AT
        assert stats.last_prune.logs_deleted == 7

    async def test_prune_update_in_place(self, storage):
        service = StatsService(storage)
        first = await service.recalculate_statistics()
        await seed(storage)

        updated = await service.update_prune_statistics(PRUNED_AT, 3)

        assert updated.id == first.id
        assert updated.total_logs == 5
        assert updated.last_prune.logs_deleted == 3


class TestConfiguration:
    """Tests for the configuration record."""

    async def test_created_lazily_from_options(self, storage):
        options = HubbleOptions(
            service_name="Orders",
            enable_data_prune=True,
            max_log_age_hours=48,
            ignore_paths=["/health"],
        )
        service = StatsService(storage, options)
        assert await storage.get_configuration() is None

        config = await service.get_configuration()

        assert config.service_name == "Orders"
        assert config.enable_data_prune is True
        assert config.max_log_age_hours == 48
        assert config.ignore_paths == ["/health"]
        assert config.system_info.database_name == ":memory:"
        assert (await storage.get_configuration()).id == config.id

    async def test_existing_record_wins_over_options(self, storage):
        await StatsService(storage, HubbleOptions(service_name="Stored")).get_configuration()

        config = await StatsService(
            storage, HubbleOptions(service_name="Other")
        ).get_configuration()

        assert config.service_name == "Stored"

    async def test_current_configuration_before_load(self, storage):
        service = StatsService(storage, HubbleOptions(service_name="Orders"))
        assert service.current_configuration.service_name == "Orders"

    async def test_save_retention_settings(self, storage):
        service = StatsService(storage)

        config = await service.save_retention_settings(True, 2, 72)

        assert service.current_configuration is config
        stored = await storage.get_configuration()
        assert stored.enable_data_prune is True
        assert stored.data_prune_interval_hours == 2
        assert stored.max_log_age_hours == 72

    @pytest.mark.parametrize("interval, max_age", [(0, 24), (1, 0), (-1, -1)])
    async def test_invalid_retention_rejected(self, storage, interval, max_age):
        service = StatsService(storage)
        before = await service.get_configuration()

        with pytest.raises(ValueError):
            await service.save_retention_settings(True, interval, max_age)

        assert service.current_configuration is before

    async def test_save_capture_settings(self, storage):
        service = StatsService(storage)

        config = await service.save_capture_settings(False, True)

        assert config.capture_http_requests is False
        assert config.capture_logger_messages is True

    async def test_save_ignore_paths_trims(self, storage):
        service = StatsService(storage)

        config = await service.save_ignore_paths([" /health ", "", "  ", "/metrics"])

        assert config.ignore_paths == ["/health", "/metrics"]
        assert (await storage.get_configuration()).ignore_paths == ["/health", "/metrics"]

    async def test_reload_configuration(self, storage):
        service = StatsService(storage)
        await service.save_capture_settings(False, False)
        await storage.clear()

        config = await service.reload_configuration()

        assert config.capture_http_requests is True
