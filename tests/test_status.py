import pytest

from sdcp_bridge.status import (
    PrintStatusCode,
    Position,
    format_time,
    normalize,
    parse_coordinates,
    snapshot_to_state,
    status_text,
)


@pytest.mark.parametrize(
    "code,label",
    [
        (0, "Idle"),
        (1, "Homing"),
        (2, "Dropping"),
        (3, "Exposuring"),
        (4, "Lifting"),
        (5, "Pausing"),
        (6, "Paused"),
        (7, "Stopping"),
        (8, "Stopped"),
        (9, "Print Complete"),
        (10, "File Checking"),
        (13, "Printing"),
        (14, "Print Complete"),
        (16, "Heating"),
        (20, "Bed Leveling"),
    ],
)
def test_status_text_known_codes(code, label):
    assert status_text(code) == label


def test_every_status_code_has_a_label():
    for code in PrintStatusCode:
        assert not status_text(code).startswith("Unknown")


def test_status_text_unknown_code():
    assert status_text(99) == "Unknown Status (99)"
    assert status_text(None) == "Unknown Status (None)"


@pytest.mark.parametrize(
    "ticks,expected",
    [
        (None, "00:00:00"),
        (0, "00:00:00"),
        (-500, "00:00:00"),
        (999, "00:00:00"),
        (61_000, "00:01:01"),
        (3_661_000, "01:01:01"),
        (360_000_000, "100:00:00"),
    ],
)
def test_format_time(ticks, expected):
    assert format_time(ticks) == expected


def test_format_time_is_monotonic():
    samples = [0, 1_000, 59_999, 60_000, 3_599_000, 3_600_000, 86_400_000]
    rendered = [format_time(value) for value in samples]

    assert rendered == sorted(rendered)


def test_parse_coordinates_full_triplet():
    assert parse_coordinates("1.5,2.25,10") == Position(x=1.5, y=2.25, z=10.0)


@pytest.mark.parametrize("value", ["1.5,2.25", "a,b,c", "", None, 42])
def test_parse_coordinates_incomplete_is_absent(value):
    assert parse_coordinates(value) == Position()


def test_normalize_full_payload():
    snapshot = normalize(
        {
            "TempOfHotbed": 60.2,
            "TempOfNozzle": "210.5",
            "TempTargetHotbed": 60,
            "CurrenCoord": "10.0,20.0,5.5",
            "ZOffset": 0.12,
            "CurrentFanSpeed": {"ModelFan": 100, "AuxiliaryFan": 50, "BoxFan": 0},
            "LightStatus": {"SecondLight": 1, "RgbLight": [255, 300, -4]},
            "PrintInfo": {
                "Status": 13,
                "Progress": 42,
                "CurrentLayer": 100,
                "TotalLayer": 500,
                "Filename": "benchy.gcode",
                "CurrentTicks": 61_000,
                "TotalTicks": 3_661_000,
            },
            "PrintError": 0,
        }
    )

    assert snapshot.temperatures.hotbed == 60.2
    assert snapshot.temperatures.nozzle == 210.5
    assert snapshot.position == Position(x=10.0, y=20.0, z=5.5)
    assert snapshot.fans.auxiliary_fan == 50.0
    assert snapshot.light.second_light is True
    assert snapshot.light.rgb == (255, 255, 0)
    assert snapshot.print_info.status == 13
    assert snapshot.print_info.status_text == "Printing"
    assert snapshot.print_info.filename == "benchy.gcode"
    assert snapshot.print_error == 0


def test_normalize_missing_fields_stay_absent():
    snapshot = normalize({"TempOfHotbed": "n/a", "PrintInfo": "garbage"})

    assert snapshot.temperatures.hotbed is None
    assert snapshot.print_info.status is None
    assert snapshot.print_info.status_text is None
    assert snapshot.light.rgb is None


def test_snapshot_to_state_omits_absent_values():
    state = snapshot_to_state(normalize({"TempOfHotbed": 25.0, "CurrenCoord": "1,2"}))

    assert state == {"temperature.hotbed": 25.0}


def test_snapshot_to_state_derives_times_and_lighting():
    state = snapshot_to_state(
        normalize(
            {
                "LightStatus": {"SecondLight": False, "RgbLight": [1, 2, 3]},
                "PrintInfo": {"Status": 14, "CurrentTicks": 61_000, "TotalTicks": 3_661_000},
            }
        )
    )

    assert state["print.status"] == 14
    assert state["print.status_text"] == "Print Complete"
    assert state["print.current_time"] == "00:01:01"
    assert state["print.total_time"] == "01:01:01"
    assert state["print.remaining_time"] == "01:00:00"
    assert state["lighting.second_light"] is False
    assert (state["lighting.rgb_r"], state["lighting.rgb_g"], state["lighting.rgb_b"]) == (1, 2, 3)
