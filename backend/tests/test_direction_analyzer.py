"""Tests for arrival/departure direction analysis."""

import datetime

import pytest

from vehicle_predictor.config import Settings
from vehicle_predictor.core.direction_analyzer import analyze_direction, parse_time_of_day
from vehicle_predictor.schemas.geo import Coordinate, Stop, StopTime
from vehicle_predictor.schemas.vehicle import VehicleFix

SETTINGS = Settings()
LOCAL = datetime.timezone(datetime.timedelta(hours=3))
NOW = datetime.datetime(2026, 10, 19, 8, 0, 0, tzinfo=LOCAL)


def make_vehicle(trip_id: str | None = "42_1") -> VehicleFix:
    return VehicleFix(
        id="bus-7", route_id="42", trip_id=trip_id, label="CJ 07 BUS",
        position=Coordinate(latitude=46.7712, longitude=23.6236),
        timestamp=(NOW - datetime.timedelta(minutes=1)).isoformat(),
    )


def make_station(stop_id: str = "s6") -> Stop:
    return Stop(id=stop_id, name=f"Station {stop_id}", coordinates=Coordinate(latitude=46.77, longitude=23.60))


def make_stop_times(target_arrival: str | None, target_seq: int = 6, trip_id: str = "42_1") -> list[StopTime]:
    """Ten stops; only the target carries a schedule."""
    return [
        StopTime(
            trip_id=trip_id, stop_id=f"s{seq}", sequence=seq,
            arrival_time=target_arrival if seq == target_seq else None,
        )
        for seq in range(1, 11)
    ]


def test_arriving_soon_is_high_confidence():
    result = analyze_direction(
        make_vehicle(), make_station(), make_stop_times("08:06:00"), now=NOW, settings=SETTINGS,
    )
    assert result.direction == "arriving"
    # 3 stops * 2 min, minus 1 min of fix staleness
    assert result.estimated_minutes == 5
    assert result.confidence == "high"


def test_arriving_later_is_medium_confidence():
    result = analyze_direction(
        make_vehicle(), make_station(), make_stop_times("08:20:00"), now=NOW, settings=SETTINGS,
    )
    assert result.direction == "arriving"
    assert result.estimated_minutes == 11
    assert result.confidence == "medium"


def test_recent_arrival_counts_as_at_station():
    result = analyze_direction(
        make_vehicle(), make_station(), make_stop_times("07:55:00"), now=NOW, settings=SETTINGS,
    )
    assert result.direction == "arriving"
    assert result.estimated_minutes == 0
    assert result.confidence == "high"


def test_long_past_arrival_is_departing():
    result = analyze_direction(
        make_vehicle(), make_station(), make_stop_times("07:30:00"), now=NOW, settings=SETTINGS,
    )
    assert result.direction == "departing"
    assert result.estimated_minutes == 30
    assert result.confidence == "low"


def test_no_schedule_uses_midpoint_with_low_confidence():
    result = analyze_direction(
        make_vehicle(), make_station("s8"), make_stop_times(None, target_seq=8), now=NOW, settings=SETTINGS,
    )
    assert result.direction == "arriving"
    assert result.estimated_minutes == 3
    assert result.confidence == "low"


def test_no_schedule_midpoint_is_a_sequence_number():
    """Sequences 11-20: the midpoint is sequence 16, not list index 5."""
    stop_times = [
        StopTime(trip_id="42_1", stop_id=f"s{seq}", sequence=seq) for seq in range(11, 21)
    ]
    result = analyze_direction(
        make_vehicle(), make_station("s18"), stop_times, now=NOW, settings=SETTINGS,
    )
    assert result.direction == "arriving"
    # 2 stops * 2 min, minus 1 min of fix staleness
    assert result.estimated_minutes == 3
    assert result.confidence == "low"
    current = [e.sequence for e in result.stop_sequence if e.is_current]
    assert current == [16]


def test_minimum_arrival_estimate_is_one_minute():
    vehicle = make_vehicle().model_copy(
        update={"timestamp": (NOW - datetime.timedelta(minutes=30)).isoformat()},
    )
    result = analyze_direction(vehicle, make_station(), make_stop_times("08:06:00"), now=NOW, settings=SETTINGS)
    assert result.direction == "arriving"
    assert result.estimated_minutes == 1


def test_station_not_on_trip_is_unknown():
    result = analyze_direction(
        make_vehicle(), make_station("elsewhere"), make_stop_times("08:06:00"), now=NOW, settings=SETTINGS,
    )
    assert result.direction == "unknown"
    assert result.confidence == "low"
    assert result.estimated_minutes == 0


def test_stop_times_of_other_trip_is_unknown():
    result = analyze_direction(
        make_vehicle(), make_station(), make_stop_times("08:06:00", trip_id="other"), now=NOW, settings=SETTINGS,
    )
    assert result.direction == "unknown"


@pytest.mark.parametrize("vehicle,station,stop_times", [
    (None, make_station(), make_stop_times("08:06:00")),
    (make_vehicle(trip_id=None), make_station(), make_stop_times("08:06:00")),
    (make_vehicle(), None, make_stop_times("08:06:00")),
    (make_vehicle(), make_station(), None),
    (make_vehicle(), make_station(), "not a list"),
])
def test_invalid_inputs_are_unknown(vehicle, station, stop_times):
    """Bad input never raises."""
    result = analyze_direction(vehicle, station, stop_times, now=NOW, settings=SETTINGS)
    assert result.direction == "unknown"
    assert result.confidence == "low"
    assert result.estimated_minutes == 0


def test_nan_sequences_are_dropped():
    stop_times = make_stop_times("08:06:00")
    stop_times.append(StopTime(trip_id="42_1", stop_id="ghost", sequence=float("nan")))
    result = analyze_direction(
        make_vehicle(), make_station("ghost"), stop_times, now=NOW, settings=SETTINGS,
    )
    assert result.direction == "unknown"


def test_stop_sequence_annotation():
    stops = [make_station("s1"), make_station("s10")]
    result = analyze_direction(
        make_vehicle(), make_station(), make_stop_times("08:06:00"), stops=stops, now=NOW, settings=SETTINGS,
    )
    seq = result.stop_sequence
    assert seq is not None
    assert [e.sequence for e in seq] == list(range(1, 11))
    assert [e.stop_id for e in seq if e.is_current] == ["s3"]
    assert [e.stop_id for e in seq if e.is_destination] == ["s10"]
    assert seq[0].stop_name == "Station s1"
    assert seq[1].stop_name == "Stop s2"
    assert seq[5].estimated_arrival == datetime.datetime(2026, 10, 19, 8, 6, 0, tzinfo=LOCAL)
    assert seq[4].estimated_arrival is None


def test_single_stop_trip_has_no_annotation():
    stop_times = [StopTime(trip_id="42_1", stop_id="s6", sequence=6, arrival_time="08:06:00")]
    result = analyze_direction(make_vehicle(), make_station(), stop_times, now=NOW, settings=SETTINGS)
    assert result.direction == "arriving"
    assert result.stop_sequence is None


def test_parse_time_of_day_rolls_past_midnight():
    assert parse_time_of_day("25:10:00", NOW) == datetime.datetime(2026, 10, 20, 1, 10, tzinfo=LOCAL)
    assert parse_time_of_day("08:06", NOW) == datetime.datetime(2026, 10, 19, 8, 6, tzinfo=LOCAL)
    assert parse_time_of_day("8:xx:00", NOW) is None
    assert parse_time_of_day("08:61:00", NOW) is None
    assert parse_time_of_day(None, NOW) is None
