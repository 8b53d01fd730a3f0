"""
End-to-end tests for SoilTemperatureSyncService.

Runs the whole flow (location lookup, validation, cache decision, Earth
Engine extraction, upsert, aggregation) against a SQLite file database
and a fake region client.
"""

import asyncio
from datetime import date, timedelta

import pytest
from sqlalchemy import delete, func, select

from config.settings.app_config import EarthEngineSettings
from soiltemp.api.services.earth_engine.earth_engine_client import (
    EarthEngineSessionManager,
)
from soiltemp.api.services.soil_temperature_validation import utc_today
from soiltemp.core.exceptions import PersistenceError
from soiltemp.core.sync.soil_temperature_sync import (
    SoilTemperatureSyncService,
    SyncRequest,
    SyncState,
)
from soiltemp.database.models.soil_temperature import SoilTemperature
from soiltemp.database.repositories.soil_temperature_repository import (
    SoilTemperatureRepository,
)

START = "2024-01-01"
END = "2024-01-30"  # 30 days


def request(**overrides) -> SyncRequest:
    fields = {"location_id": "", "start_date": START, "end_date": END}
    fields.update(overrides)
    return SyncRequest(**fields)


def stored_rows(session_factory) -> int:
    with session_factory() as session:
        return session.scalar(select(func.count()).select_from(SoilTemperature))


def delete_days(session_factory, days: list[date]) -> None:
    with session_factory() as session:
        session.execute(
            delete(SoilTemperature).where(SoilTemperature.measurement_date.in_(days))
        )
        session.commit()


class TestSyncFlow:
    @pytest.mark.asyncio
    async def test_first_sync_fetches_then_cache_serves(
        self, sync_service, location, region_client, session_factory
    ):
        first = await sync_service.sync(request(location_id=location.id))

        assert first.success, first.error
        assert first.provenance == "provider"
        assert len(first.data) == 30
        assert first.persisted_count == 30
        assert first.metadata["record_count"] == 30
        assert first.stats.level_1.avg == pytest.approx(20.0)
        assert first.stats.level_4.count == 30
        assert stored_rows(session_factory) == 30

        second = await sync_service.sync(request(location_id=location.id))

        assert second.success
        assert second.provenance == "cache"
        assert len(region_client.calls) == 1
        assert [r["date"] for r in second.data] == [r["date"] for r in first.data]
        assert second.stats == first.stats

    @pytest.mark.asyncio
    async def test_result_carries_location_and_biochar(self, sync_service, location):
        result = await sync_service.sync(request(location_id=location.id))

        assert result.location == {
            "id": location.id,
            "name": "Finca La Esperanza",
            "latitude": 4.5,
            "longitude": -73.0,
        }
        assert result.biochar["start_date"] == "2024-01-15"
        assert result.biochar_periods["pre"]["level_1"]["count"] == 14
        assert result.biochar_periods["post"]["level_1"]["count"] == 16
        assert result.data[0]["is_post_biochar"] is False
        assert result.data[-1]["is_post_biochar"] is True

    @pytest.mark.asyncio
    async def test_provider_range_is_inclusive_and_sorted(
        self, sync_service, location, region_client
    ):
        result = await sync_service.sync(request(location_id=location.id))

        call = region_client.calls[0]
        assert call["start"] == date(2024, 1, 1)
        assert call["end"] == date(2024, 1, 30)
        dates = [r["date"] for r in result.data]
        assert dates == sorted(dates)
        assert dates[0] == START
        assert dates[-1] == END

    @pytest.mark.asyncio
    async def test_force_refresh_refetches(
        self, sync_service, location, region_client, session_factory
    ):
        await sync_service.sync(request(location_id=location.id))
        result = await sync_service.sync(
            request(location_id=location.id, force_refresh=True)
        )

        assert result.provenance == "provider"
        assert len(region_client.calls) == 2
        assert stored_rows(session_factory) == 30

    @pytest.mark.asyncio
    async def test_refetch_overwrites_levels(
        self, sync_service, location, region_client, make_region_table
    ):
        await sync_service.sync(request(location_id=location.id))
        region_client.table_factory = lambda start, end: make_region_table(
            [start + timedelta(days=i) for i in range((end - start).days + 1)],
            kelvin=(283.15, 283.15, 283.15, 283.15),
        )

        result = await sync_service.sync(
            request(location_id=location.id, force_refresh=True)
        )

        assert result.stats.level_1.avg == pytest.approx(10.0)
        assert result.stats.level_4.avg == pytest.approx(10.0)

    @pytest.mark.asyncio
    async def test_concurrent_syncs_share_session_and_converge(
        self, sync_service, location, authenticator, session_factory
    ):
        results = await asyncio.gather(
            *(sync_service.sync(request(location_id=location.id)) for _ in range(3))
        )

        assert all(r.success for r in results)
        assert authenticator.await_count == 1
        assert stored_rows(session_factory) == 30


class TestCacheFreshness:
    @pytest.mark.asyncio
    async def test_small_gap_is_served_from_cache(
        self, sync_service, location, region_client, session_factory
    ):
        await sync_service.sync(request(location_id=location.id))
        delete_days(session_factory, [date(2024, 1, 5), date(2024, 1, 6)])

        result = await sync_service.sync(request(location_id=location.id))

        assert result.provenance == "cache"
        assert len(result.data) == 28
        assert len(region_client.calls) == 1

    @pytest.mark.asyncio
    async def test_large_gap_triggers_refetch(
        self, sync_service, location, region_client, session_factory
    ):
        await sync_service.sync(request(location_id=location.id))
        delete_days(
            session_factory, [date(2024, 1, 5), date(2024, 1, 6), date(2024, 1, 7)]
        )

        result = await sync_service.sync(request(location_id=location.id))

        assert result.provenance == "provider"
        assert len(result.data) == 30
        assert len(region_client.calls) == 2
        assert stored_rows(session_factory) == 30

    @pytest.mark.asyncio
    async def test_all_null_rows_are_persisted_and_cached(
        self, sync_service, location, region_client, make_region_table
    ):
        region_client.table_factory = lambda start, end: make_region_table(
            [start + timedelta(days=i) for i in range((end - start).days + 1)],
            kelvin=(None, None, None, None),
        )

        first = await sync_service.sync(request(location_id=location.id))
        second = await sync_service.sync(request(location_id=location.id))

        assert first.persisted_count == 30
        assert first.stats.level_1.count == 0
        assert first.stats.level_1.avg == 0
        assert second.provenance == "cache"
        assert len(region_client.calls) == 1


class TestCoordinateQuery:
    @pytest.mark.asyncio
    async def test_point_query_is_served_by_provider_only(
        self, sync_service, region_client, session_factory
    ):
        result = await sync_service.sync(
            SyncRequest(latitude=-3.1, longitude=-60.0, start_date=START, end_date=END)
        )

        assert result.success, result.error
        assert result.provenance == "provider"
        assert result.location == {"latitude": -3.1, "longitude": -60.0}
        assert result.biochar is None
        assert len(result.data) == 30
        assert result.data[0]["data_source"] == "ERA5-Land"
        assert result.stats.level_1.avg == pytest.approx(20.0)
        assert result.metadata["record_count"] == 30
        assert result.persisted_count == 0
        assert region_client.calls[0]["point"].latitude == -3.1
        assert stored_rows(session_factory) == 0

    @pytest.mark.asyncio
    async def test_point_query_never_reads_cache(
        self, sync_service, location, region_client, session_factory
    ):
        await sync_service.sync(request(location_id=location.id))
        result = await sync_service.sync(
            SyncRequest(latitude=4.5, longitude=-73.0, start_date=START, end_date=END)
        )

        assert result.provenance == "provider"
        assert len(region_client.calls) == 2
        assert stored_rows(session_factory) == 30

    @pytest.mark.asyncio
    async def test_point_query_validates_coordinates(self, sync_service, region_client):
        result = await sync_service.sync(
            SyncRequest(latitude=95.0, longitude=-60.0, start_date=START, end_date=END)
        )

        assert result.error_code == "invalid_query"
        assert any("latitude" in e for e in result.errors)
        assert region_client.calls == []

    @pytest.mark.asyncio
    async def test_point_query_without_rows(self, sync_service, region_client):
        region_client.table_factory = lambda start, end: []

        result = await sync_service.sync(
            SyncRequest(latitude=-3.1, longitude=-60.0, start_date=START, end_date=END)
        )

        assert result.success
        assert result.data == []
        assert result.location == {"latitude": -3.1, "longitude": -60.0}
        assert "3 months" in result.message

    def test_request_needs_a_target(self):
        with pytest.raises(ValueError):
            SyncRequest(latitude=-3.1, start_date=START, end_date=END)


class TestSyncFailures:
    @pytest.mark.asyncio
    async def test_no_provider_rows(self, sync_service, location, region_client):
        region_client.table_factory = lambda start, end: []

        result = await sync_service.sync(request(location_id=location.id))

        assert result.success
        assert result.data == []
        assert result.stats is None
        assert result.provenance == "provider"
        assert "3 months" in result.message

    @pytest.mark.asyncio
    async def test_end_date_today_is_rejected(
        self, sync_service, location, region_client, authenticator
    ):
        today = utc_today()
        result = await sync_service.sync(
            request(
                location_id=location.id,
                start_date=(today - timedelta(days=30)).isoformat(),
                end_date=today.isoformat(),
            )
        )

        assert not result.success
        assert result.error_code == "invalid_query"
        assert any("publication delay" in e for e in result.errors)
        assert region_client.calls == []
        authenticator.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reversed_dates_are_rejected(self, sync_service, location):
        result = await sync_service.sync(
            request(location_id=location.id, start_date=END, end_date=START)
        )

        assert result.error_code == "invalid_query"
        assert result.state == SyncState.FAILED

    @pytest.mark.asyncio
    async def test_bad_dates_win_over_unknown_location(self, sync_service):
        result = await sync_service.sync(
            request(location_id="does-not-exist", start_date="2024-13-01")
        )

        assert result.error_code == "invalid_query"
        assert any("not a valid date" in e for e in result.errors)

    @pytest.mark.asyncio
    async def test_reversed_dates_win_over_unknown_location(self, sync_service):
        result = await sync_service.sync(
            request(location_id="does-not-exist", start_date=END, end_date=START)
        )

        assert result.error_code == "invalid_query"

    @pytest.mark.asyncio
    async def test_unknown_location(self, sync_service, location):
        result = await sync_service.sync(request(location_id="does-not-exist"))

        assert not result.success
        assert result.error_code == "location_not_found"

    @pytest.mark.asyncio
    async def test_location_of_another_owner(self, sync_service, location):
        result = await sync_service.sync(
            request(location_id=location.id), owner_id="intruder"
        )

        assert result.error_code == "location_not_found"

    @pytest.mark.asyncio
    async def test_provider_not_configured(
        self, location_repository, soil_repository, soil_client, location
    ):
        service = SoilTemperatureSyncService(
            location_repository=location_repository,
            soil_repository=soil_repository,
            session_manager=EarthEngineSessionManager(
                credentials=EarthEngineSettings()
            ),
            soil_client=soil_client,
        )

        result = await service.sync(request(location_id=location.id))

        assert not result.success
        assert result.error_code == "provider_not_configured"

    @pytest.mark.asyncio
    async def test_provider_auth_failure(self, sync_service, location, authenticator):
        authenticator.side_effect = RuntimeError("invalid_grant: bad key")

        result = await sync_service.sync(request(location_id=location.id))

        assert result.error_code == "provider_auth_failed"
        assert "invalid_grant" in result.error

    @pytest.mark.asyncio
    async def test_provider_query_failure(
        self, sync_service, location, region_client, session_factory
    ):
        region_client.error = RuntimeError("Computation timed out.")

        result = await sync_service.sync(request(location_id=location.id))

        assert result.error_code == "provider_query_failed"
        assert result.persisted_count == 0
        assert stored_rows(session_factory) == 0

    @pytest.mark.asyncio
    async def test_timeout(self, sync_service, location, region_client):
        region_client.delay = 2.0

        result = await sync_service.sync(request(location_id=location.id), timeout=0.1)

        assert not result.success
        assert result.error_code == "provider_timeout"
        assert "fetching" in result.error

    @pytest.mark.asyncio
    async def test_partial_persistence_failure_keeps_written_rows(
        self,
        session_factory,
        location_repository,
        session_manager,
        soil_client,
        location,
    ):
        class FailingRepository(SoilTemperatureRepository):
            writes = 0

            def upsert(self, *args, **kwargs):
                if self.writes == 3:
                    raise PersistenceError("disk I/O error")
                self.writes += 1
                return super().upsert(*args, **kwargs)

        service = SoilTemperatureSyncService(
            location_repository=location_repository,
            soil_repository=FailingRepository(session_factory),
            session_manager=session_manager,
            soil_client=soil_client,
        )

        result = await service.sync(request(location_id=location.id))

        assert not result.success
        assert result.error_code == "persistence_failed"
        assert result.persisted_count == 3
        assert [r["date"] for r in result.data] == [
            "2024-01-01",
            "2024-01-02",
            "2024-01-03",
        ]
        assert stored_rows(session_factory) == 3
