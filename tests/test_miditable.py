import pytest

from oscmap.argval import ArgVal
from oscmap.miditable import INVALID_MIDI, Message, MidiTable, Port, translate

LINEAR = {"min": "-1", "max": "1", "scale": "linear"}
LOGARITHMIC = {"min": "1", "max": "1000", "scale": "logarithmic"}

PORTS = {
    "/freq": Port("freq:f", {"min": "0", "max": "1", "scale": "linear"}),
    "/gain": Port("gain:i"),
    "/gate": Port("gate:T"),
    "/chan": Port("chan:c"),
    "/plain": Port("plain"),
    "/dir/": Port("dir/", ports={"x": Port("x:i")}),
}


@pytest.fixture
def recorded():
    table = MidiTable(PORTS.get)
    log = {"errors": [], "events": [], "modify": []}
    table.error_cb = lambda reason, path: log["errors"].append((reason, path))
    table.event_cb = log["events"].append
    table.modify_cb = lambda *args: log["modify"].append(args)
    return table, log


def test_translate_linear():
    assert translate(0, LINEAR) == pytest.approx(-1.0)
    assert translate(64, LINEAR) == pytest.approx(0.0)
    assert translate(127, LINEAR) == pytest.approx(1.0)


def test_translate_logarithmic():
    assert translate(0, LOGARITHMIC) == pytest.approx(1.0)
    assert translate(127, LOGARITHMIC) == pytest.approx(1000.0)


def test_translate_logmin_overrides_min():
    meta = dict(LOGARITHMIC, logmin="10")
    assert translate(0, meta) == pytest.approx(10.0)


def test_translate_missing_properties():
    assert translate(100, {"min": "0", "max": "1"}) == 0.0
    assert translate(100, None) == 0.0


def test_translate_unknown_scale():
    assert translate(100, {"min": "0", "max": "1", "scale": "cubic"}) == 0.0


def test_learn_then_process(recorded):
    table, log = recorded
    table.learn("/freq")
    assert not table.has(0, 7)
    table.process(0, 7, 10)
    assert table.has(0, 7)
    assert log["modify"] == [("ADD", "/freq", PORTS["/freq"].metadata, 0, 7)]
    assert table.unhandled_path == ""
    assert table.unhandled_ctl == INVALID_MIDI

    table.process(0, 7, 64)
    [msg] = log["events"]
    assert msg.path == "/freq"
    assert msg.types == "f"
    assert msg.args[0].value == pytest.approx(0.5)


def test_process_unbound_records_controller(recorded):
    table, log = recorded
    table.process(2, 9, 1)
    assert table.unhandled_ctl == 9
    assert table.unhandled_ch == 2
    assert log["events"] == []


def test_int_and_char_values(recorded):
    table, log = recorded
    table.add_elm(0, 1, "/gain")
    table.add_elm(0, 2, "/chan")
    table.process(0, 1, 42)
    table.process(0, 2, 42)
    assert log["events"] == [
        Message("/gain", (ArgVal("i", 42),)),
        Message("/chan", (ArgVal("c", 42),)),
    ]


def test_toggle_threshold(recorded):
    table, log = recorded
    table.add_elm(1, 1, "/gate")
    table.process(1, 1, 63)
    table.process(1, 1, 64)
    assert [m.types for m in log["events"]] == ["F", "T"]


def test_bad_paths(recorded):
    table, log = recorded
    table.add_elm(0, 1, "/missing")
    table.add_elm(0, 2, "/dir/")
    assert log["errors"] == [("Bad path", "/missing"), ("Bad path", "/dir/")]
    assert not table.has(0, 1)
    assert not table.has(0, 2)


def test_port_without_arguments(recorded):
    table, log = recorded
    table.add_elm(0, 3, "/plain")
    assert log["errors"] == [("Failed to read metadata", "/plain")]
    assert not table.has(0, 3)
    assert log["modify"][0][0] == "ADD"


def test_replace_binding(recorded):
    table, log = recorded
    table.add_elm(0, 3, "/gain")
    table.add_elm(0, 3, "/chan")
    entry = table.get(0, 3)
    assert entry.path == "/chan"
    assert entry.type == "c"
    assert [m[0] for m in log["modify"]] == ["ADD", "REPLACE"]


def test_clear_entry(recorded):
    table, log = recorded
    table.add_elm(0, 4, "/gain")
    table.clear_entry("/gain")
    assert not table.has(0, 4)
    assert log["modify"][-1] == ("DEL", "/gain", "", -1, -1)


def test_learn_clears_previous_binding(recorded):
    table, _ = recorded
    table.add_elm(0, 5, "/gain")
    table.learn("/gain")
    assert not table.has(0, 5)
    table.process(0, 6, 0)
    assert table.get(0, 6).path == "/gain"


def test_learn_too_long(recorded):
    table, log = recorded
    path = "/" + "x" * 128
    table.learn(path)
    assert log["errors"] == [("String too long", path)]
    assert table.unhandled_path == ""


def test_table_is_bounded(recorded):
    table, log = recorded
    for ctl in range(128):
        table.add_elm(0, ctl, "/gain")
    table.add_elm(1, 0, "/gain")
    assert all(table.has(0, ctl) for ctl in range(128))
    assert not table.has(1, 0)
    assert len(log["modify"]) == 128


def test_get_returns_none_when_unbound(recorded):
    table, _ = recorded
    assert table.get(3, 3) is None
    assert not table.has(3, 3)