"""
Tileset Tests
=============

Window lookup, sample timestamps and the playback timeline.
"""

import datetime as dt

import pytest
from pydantic import ValidationError

from aq_exposure.models import SimulationInstant, TilesetWindow
from aq_exposure.tileset import SimulationTimeline, TilesetSelector

from conftest import SAMPLE_DATE


class TestTilesetSelector:
    """Tests for TilesetSelector."""
    
    @pytest.mark.parametrize("hour,expected", [
        (0, "2024-09-16-morning"),
        (11, "2024-09-16-morning"),
        (12, None),
        (17, None),
        (18, "2024-09-16-evening"),
        (23, "2024-09-16-evening"),
    ])
    def test_inclusive_hour_ranges(self, selector, hour, expected):
        window = selector.resolve_window(SimulationInstant(date=SAMPLE_DATE, hour=hour))
        assert (window.id if window else None) == expected
    
    def test_other_date_is_a_gap(self, selector):
        instant = SimulationInstant(date=dt.date(2024, 9, 17), hour=6)
        assert selector.resolve_window(instant) is None
    
    def test_every_hour_resolves_to_at_most_one_window(self, windows, selector):
        for hour in range(24):
            instant = SimulationInstant(date=SAMPLE_DATE, hour=hour)
            matches = [w for w in windows if w.covers(instant)]
            assert len(matches) <= 1
            assert selector.resolve_window(instant) == (matches[0] if matches else None)
    
    def test_overlapping_windows_rejected(self):
        with pytest.raises(ValueError, match="overlap"):
            TilesetSelector([
                TilesetWindow(id="a", date=SAMPLE_DATE, start_hour=0, end_hour=12),
                TilesetWindow(id="b", date=SAMPLE_DATE, start_hour=12, end_hour=23),
            ])
    
    def test_windows_listed_in_order(self):
        selector = TilesetSelector([
            TilesetWindow(id="late", date=SAMPLE_DATE, start_hour=18, end_hour=23),
            TilesetWindow(id="prev-day", date=dt.date(2024, 9, 15), start_hour=18, end_hour=23),
            TilesetWindow(id="early", date=SAMPLE_DATE, start_hour=0, end_hour=5),
        ])
        assert [w.id for w in selector.windows] == ["prev-day", "early", "late"]
    
    def test_sample_timestamp(self):
        instant = SimulationInstant(date=dt.date(2024, 9, 15), hour=6)
        assert TilesetSelector.sample_timestamp(instant) == "2024-09-15T06:00:00"


class TestTilesetWindow:
    """Tests for TilesetWindow validation."""
    
    def test_default_layer_id(self):
        window = TilesetWindow(id="w1", date=SAMPLE_DATE, start_hour=0, end_hour=3)
        assert window.source_layer_id == "layer-w1"
    
    def test_explicit_layer_id(self):
        window = TilesetWindow(
            id="w1", date=SAMPLE_DATE, start_hour=0, end_hour=3,
            source_layer_id="split_20240916_morning_processed",
        )
        assert window.source_layer_id == "split_20240916_morning_processed"
    
    @pytest.mark.parametrize("start,end", [(5, 4), (-1, 3), (0, 24)])
    def test_invalid_ranges(self, start, end):
        with pytest.raises(ValidationError):
            TilesetWindow(id="w", date=SAMPLE_DATE, start_hour=start, end_hour=end)


class TestSimulationInstant:
    """Tests for SimulationInstant."""
    
    def test_timestamp_and_key(self):
        instant = SimulationInstant(date=dt.date(2024, 9, 15), hour=18)
        assert instant.timestamp == "2024-09-15T18:00:00"
        assert instant.key == "2024-09-15-18"
    
    def test_from_datetime_converts_to_utc(self):
        pdt = dt.timezone(dt.timedelta(hours=-7))
        instant = SimulationInstant.from_datetime(dt.datetime(2024, 9, 15, 20, 45, tzinfo=pdt))
        assert instant == SimulationInstant(date=dt.date(2024, 9, 16), hour=3)
    
    def test_rejects_bad_hour(self):
        with pytest.raises(ValueError):
            SimulationInstant(date=SAMPLE_DATE, hour=24)


class TestSimulationTimeline:
    """Tests for SimulationTimeline."""
    
    def test_skips_overnight_gap(self):
        timeline = SimulationTimeline(
            start=dt.datetime(2024, 9, 15, 18),
            skipped_hours=6,
            skip_after=6,
            total_steps=12,
        )
        assert timeline.instant_at(0).timestamp == "2024-09-15T18:00:00"
        assert timeline.instant_at(5).timestamp == "2024-09-15T23:00:00"
        assert timeline.instant_at(6).timestamp == "2024-09-16T06:00:00"
        assert timeline.instant_at(11).timestamp == "2024-09-16T11:00:00"
    
    def test_iterates_all_steps(self):
        timeline = SimulationTimeline(start=dt.datetime(2024, 9, 16), total_steps=5)
        assert [i.hour for i in timeline] == [0, 1, 2, 3, 4]
    
    @pytest.mark.parametrize("offset", [-1, 24])
    def test_offset_out_of_range(self, offset):
        timeline = SimulationTimeline(start=dt.datetime(2024, 9, 16))
        with pytest.raises(ValueError):
            timeline.instant_at(offset)
