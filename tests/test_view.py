from __future__ import annotations

from datetime import timedelta

import pytest
from crew_fakes import T0, member, position

from crewmap.models import TrailPoint
from crewmap.view import Marker, current_markers, focus_point, trail_collection, trail_geometry, trail_opacity


def _trail(member_id: str, coords: list[tuple[float, float]]) -> list[TrailPoint]:
    return [
        TrailPoint(
            member_id=member_id,
            crew_id="crew-1",
            latitude=lat,
            longitude=lon,
            timestamp=T0 + timedelta(minutes=i),
            day_bucket=T0.date(),
        )
        for i, (lat, lon) in enumerate(coords)
    ]


def test_markers_follow_roster_order_and_skip_unresolved() -> None:
    roster = [member("sam", "2"), member("alex", "1"), member("kim", "3")]
    live = {"1": position("1", 1), "2": position("2", 1), "9": position("9", 1)}

    markers = current_markers(live, roster)

    assert [m.member_id for m in markers] == ["sam", "alex"]
    assert markers[0].initial == "S"
    assert markers[0].color == "#4ECDC4"


def test_trail_geometry_needs_two_points() -> None:
    assert trail_geometry([]) is None
    assert trail_geometry(_trail("alex", [(1.0, 2.0)])) is None

    line = trail_geometry(_trail("alex", [(1.0, 2.0), (3.0, 4.0)]))
    assert line is not None
    assert line.member_id == "alex"
    assert line.coordinates == ((1.0, 2.0), (3.0, 4.0))


def test_trail_geojson_uses_lon_lat_order() -> None:
    line = trail_geometry(_trail("alex", [(1.0, 2.0), (3.0, 4.0)]))
    assert line is not None

    feature = line.to_geojson(color="#FF6B6B")

    assert feature["geometry"] == {"type": "LineString", "coordinates": [[2.0, 1.0], [4.0, 3.0]]}
    assert feature["properties"] == {"member_id": "alex", "color": "#FF6B6B"}


def test_trail_collection_colors_each_member() -> None:
    roster = [member("alex", "1", color="#FF6B6B"), member("sam", "2")]
    trails = {"alex": _trail("alex", [(1.0, 2.0), (3.0, 4.0)]), "sam": _trail("sam", [(5.0, 6.0)])}

    collection = trail_collection(trails, roster)

    assert collection["type"] == "FeatureCollection"
    assert [f["properties"]["color"] for f in collection["features"]] == ["#FF6B6B"]


@pytest.mark.parametrize(
    ("age", "expected"),
    [
        (timedelta(0), 1.0),
        (timedelta(hours=12), 0.5),
        (timedelta(hours=24), 0.1),
        (timedelta(hours=40), 0.1),
        (timedelta(minutes=-5), 1.0),
    ],
)
def test_trail_opacity(age: timedelta, expected: float) -> None:
    assert trail_opacity(T0 - age, T0) == pytest.approx(expected)


def test_focus_point_is_first_marker() -> None:
    assert focus_point([]) is None
    markers = [
        Marker(member=member("alex", "1"), position=position("1", 1, lat=10.0, lon=20.0)),
        Marker(member=member("sam", "2"), position=position("2", 1, lat=30.0, lon=40.0)),
    ]
    assert focus_point(markers) == (10.0, 20.0)
