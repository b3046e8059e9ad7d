import pytest

from oscmap.argval import ArgVal
from oscmap.miditable import Message, Port
from oscmap.midimapper import (
    ADD_WATCH_PATH,
    BIND_PATH,
    MidiBijection,
    MidiMapperNonRt,
    MidiMapperRt,
    MidiMapperStorage,
    kill_map,
)

FOO = Port("foo::c:i", {"min": "0", "max": "127"})
BAR = Port("bar::c:i", {"min": "0", "max": "127"})
VOL = Port("vol::f", {"min": "0", "max": "1"})
NOMETA = Port("nometa::f", {})
PORTS = {"/foo": FOO, "/bar": BAR, "/vol": VOL, "/nometa": NOMETA}


class Link:
    def __init__(self):
        self.messages = []
        self.storage = None

    def __call__(self, msg):
        self.messages.append(msg)
        if msg.path == BIND_PATH:
            self.storage = msg.args[0].value


def make_pair():
    link = Link()
    non_rt = MidiMapperNonRt()
    non_rt.base_ports = PORTS.get
    non_rt.rt_cb = link
    rt = MidiMapperRt()
    front, back = [], []
    rt.set_frontend_cb(front.append)
    rt.set_backend_cb(back.append)
    return non_rt, rt, link, front, back


def test_basic():
    non_rt, _, link, _, _ = make_pair()
    non_rt.add_new_mapper(0, FOO, "/foo")
    non_rt.add_new_mapper(1, BAR, "/bar")
    assert "/bar" in non_rt.inv_map
    assert "/foo" in non_rt.inv_map
    assert link.storage.mapping == [(0, True, 0), (1, True, 1)]
    non_rt.clear()
    assert len(non_rt.inv_map) == 0
    assert link.storage.mapping == []


def test_relearn():
    non_rt, rt, link, front, _ = make_pair()
    assert len(non_rt.get_midi_mapping_strings()) == 0
    non_rt.map("/foo", True)
    assert link.messages[-1] == Message(ADD_WATCH_PATH)
    rt.add_watch()
    rt.handle_cc(5, 2)
    assert front == [Message("/midi-use-CC", (ArgVal("i", 5),))]
    non_rt.use_free_id(5)
    assert non_rt.get_midi_mapping_strings() == {"/foo": "5"}
    non_rt.un_map("/foo", False)
    non_rt.un_map("/foo", True)
    assert len(non_rt.get_midi_mapping_strings()) == 0


def test_learned_binding_drives_backend():
    non_rt, rt, link, _, back = make_pair()
    non_rt.map("/foo", True)
    rt.add_watch()
    rt.handle_cc(5, 2)
    non_rt.use_free_id(5)
    rt.bind(link.storage)
    assert len(rt.pending) == 0
    rt.handle_cc(5, 100)
    assert back == [Message("/foo", (ArgVal("i", 100),))]


def test_fine_learning_on_bound_path():
    non_rt, _, link, _, _ = make_pair()
    non_rt.map("/foo", True)
    non_rt.use_free_id(5)
    non_rt.map("/foo", False)
    assert non_rt.has_fine_pending("/foo")
    non_rt.use_free_id(9)
    assert non_rt.get_mapped_string("/foo") == "5:9"
    assert non_rt.get_coarse("/foo") == 5
    assert non_rt.get_fine("/foo") == 9
    assert link.storage.mapping == [(5, True, 0), (9, False, 0)]


def test_pending_strings():
    non_rt, _, _, _, _ = make_pair()
    non_rt.map("/foo", True)
    non_rt.map("/foo", False)
    assert non_rt.get_mapped_string("/foo") == "01"
    assert non_rt.get_midi_mapping_strings() == {"/foo": "A:B"}
    assert non_rt.has_pending("/foo")
    assert non_rt.has_coarse_pending("/foo")
    assert not non_rt.has("/foo")


def test_map_twice_queues_once():
    non_rt, _, link, _, _ = make_pair()
    non_rt.map("/foo", True)
    non_rt.map("/foo", True)
    assert list(non_rt.learn_queue) == [("/foo", True)]
    assert len(link.messages) == 1


def test_learn_without_bounds_is_dropped():
    non_rt, _, _, _, _ = make_pair()
    non_rt.map("/nometa", True)
    non_rt.use_free_id(7)
    assert not non_rt.has("/nometa")
    assert not non_rt.has_pending("/nometa")


def test_learn_unknown_port_raises():
    non_rt, _, _, _, _ = make_pair()
    non_rt.map("/missing", True)
    with pytest.raises(KeyError):
        non_rt.use_free_id(3)


def test_float_mapper_and_bounds():
    non_rt, _, link, _, _ = make_pair()
    non_rt.add_new_mapper(3, VOL, "/vol")
    out = []
    assert link.storage.handle_cc(3, 64, out.append)
    assert out == [Message("/vol", (ArgVal("f", 0.5),))]
    non_rt.set_bounds("/vol", 0.0, 2.0)
    out.clear()
    link.storage.handle_cc(3, 64, out.append)
    assert out == [Message("/vol", (ArgVal("f", 1.0),))]
    assert non_rt.get_bounds("/vol") == (0.0, 1.0, 0.0, 2.0)
    assert non_rt.get_bounds("/foo") == (0.0, 127.0, -1.0, -1.0)
    assert non_rt.get_bijection("/vol") == MidiBijection(0, 0.0, 2.0)


def test_add_fine_mapper():
    non_rt, _, _, _, _ = make_pair()
    non_rt.add_new_mapper(3, VOL, "/vol")
    non_rt.add_fine_mapper(4, VOL, "/vol")
    assert non_rt.has_coarse("/vol")
    assert non_rt.has_fine("/vol")
    assert (4, False, 0) in non_rt.storage.mapping


def test_snoop_sends_virtual_cc():
    non_rt, _, link, _, _ = make_pair()
    non_rt.add_new_mapper(3, VOL, "/vol")
    link.messages.clear()
    non_rt.snoop(Message("/vol", (ArgVal("f", 0.5),)))
    assert link.messages == [
        Message("/virtual_midi_cc", (ArgVal("i", 0), ArgVal("i", 64), ArgVal("i", 3)))
    ]
    link.messages.clear()
    non_rt.snoop(Message("/other", (ArgVal("f", 0.5),)))
    assert link.messages == []


def test_bijection():
    bi = MidiBijection(0, 0.0, 1.0)
    assert bi.to_midi(0.5) == 8192
    assert bi.from_midi(8192) == 0.5
    other = MidiBijection(1, 0.0, 1.0)
    assert other.to_midi(0.5) == 0
    assert other.from_midi(100) == 0.0


def test_storage_coarse_and_fine():
    seen = []
    storage = MidiMapperStorage(
        [0], [(10, True, 0), (11, False, 0)], [lambda v, w: seen.append(v)]
    )
    assert storage.handle_cc(10, 3, None)
    assert storage.handle_cc(11, 5, None)
    assert seen == [384, 389]
    assert not storage.handle_cc(12, 1, None)


def test_clone_values_and_clone():
    src = MidiMapperStorage([259], [(10, True, 0), (11, False, 0)], [None])
    dest = MidiMapperStorage([99], [(11, True, 0)], [None])
    dest.clone_values(src)
    assert dest.values == [384]
    copy = src.clone()
    copy.values[0] = 1
    copy.mapping.append((12, True, 0))
    assert src.values == [259]
    assert len(src.mapping) == 2


def test_kill_map():
    storage = MidiMapperStorage([0], [(1, True, 0), (2, False, 0)], [None])
    kill_map(1, storage)
    assert storage.mapping == [(2, False, 0)]
    with pytest.raises(ValueError):
        kill_map(7, storage)


def test_rt_watch_and_channels():
    rt = MidiMapperRt()
    front = []
    rt.set_frontend_cb(front.append)
    rt.handle_cc(5, 1)
    assert front == []
    rt.add_watch()
    rt.add_watch()
    rt.handle_cc(5, 1, chan=2)
    rt.handle_cc(5, 1, chan=2)
    assert front == [Message("/midi-use-CC", (ArgVal("i", (1 << 14) + 5),))]
    rt.handle_cc(5, 1, is_nrpn=True)
    assert front[-1] == Message("/midi-use-CC", (ArgVal("i", (1 << 18) + 5),))
    assert rt.watch_size == 0
    rt.rem_watch()
    assert rt.watch_size == 0


def test_rt_bind_keeps_values():
    rt = MidiMapperRt()
    first = MidiMapperStorage([0], [(10, True, 0)], [lambda v, w: None])
    rt.bind(first)
    rt.handle_cc(10, 3)
    second = MidiMapperStorage([0, 0], [(10, True, 1)], [None, lambda v, w: None])
    rt.bind(second)
    assert rt.storage is second
    assert second.values == [0, 384]