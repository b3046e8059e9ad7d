"""MIDI learning for OSC parameters, split into a realtime and a non-realtime half.

The non-realtime side (:class:`MidiMapperNonRt`) keeps track of which
parameter path is bound to which controller and builds new
:class:`MidiMapperStorage` objects.  It hands each storage to the realtime
side through a ``/midi-learn/midi-bind`` message whose only argument is a
blob (type ``'b'``) carrying the storage object itself.  The realtime side
(:class:`MidiMapperRt`) turns controller changes into parameter messages.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field, replace
from typing import Callable, Optional

from .argval import ArgVal, arg_val_from_float
from .miditable import Message, Port, _atof

__all__ = [
    "BIND_PATH",
    "ADD_WATCH_PATH",
    "MidiBijection",
    "MidiMapperStorage",
    "MidiMapperNonRt",
    "MidiMapperRt",
    "kill_map",
]

BIND_PATH = "/midi-learn/midi-bind"
ADD_WATCH_PATH = "/midi-learn/midi-add-watch"

WriteCb = Callable[[Message], None]
ValueCb = Callable[[int, WriteCb], None]
PortLookup = Callable[[str], Optional[Port]]


def _int16(x: int) -> int:
    x &= 0xFFFF
    return x - 0x10000 if x & 0x8000 else x


def _set_coarse(old: int, val: int) -> int:
    return _int16((val << 7) | (old & 0x7F))


def _set_fine(old: int, val: int) -> int:
    return _int16(val | (old & 0x3F80))


@dataclass(frozen=True)
class MidiBijection:
    """Maps parameter values in ``min..max`` onto 14-bit MIDI values and back.

    Only mode 0 (linear) is defined; other modes map everything to zero.
    """

    mode: int = 0
    min: float = 0.0
    max: float = 0.0

    def to_midi(self, x: float) -> int:
        """Return the 14-bit MIDI value for parameter value ``x``."""
        if self.mode != 0:
            return 0
        return int((x - self.min) / (self.max - self.min) * (1 << 14))

    def from_midi(self, x: int) -> float:
        """Return the parameter value for the 14-bit MIDI value ``x``."""
        if self.mode != 0:
            return 0.0
        return x / float(1 << 14) * (self.max - self.min) + self.min


@dataclass
class MidiMapperStorage:
    """The realtime state: current 14-bit values, bindings and callbacks.

    Each entry of ``mapping`` is ``(controller id, coarse, value index)``;
    a coarse controller sets the upper seven bits of the value, a fine one
    the lower seven.  ``callbacks[index](value, write)`` emits the message
    for value ``index``.
    """

    values: list[int] = field(default_factory=list)
    mapping: list[tuple[int, bool, int]] = field(default_factory=list)
    callbacks: list[ValueCb] = field(default_factory=list)

    def handle_cc(self, ident: int, val: int, write: WriteCb) -> bool:
        """Apply a controller change; return whether the controller is bound."""
        for cc_id, coarse, ind in self.mapping:
            if cc_id == ident:
                old = self.values[ind]
                self.values[ind] = _set_coarse(old, val) if coarse else _set_fine(old, val)
                self.callbacks[ind](self.values[ind], write)
                return True
        return False

    def clone_values(self, storage: MidiMapperStorage) -> None:
        """Take over the controller values of ``storage`` for shared controllers."""
        self.values = [0] * len(self.values)
        for cc_id, coarse_dest, ind_dest in self.mapping:
            for src_id, coarse_src, ind_src in storage.mapping:
                if cc_id != src_id:
                    continue
                src = storage.values[ind_src]
                val = src >> 7 if coarse_src else src & 0x7F
                old = self.values[ind_dest]
                self.values[ind_dest] = (
                    _set_coarse(old, val) if coarse_dest else _set_fine(old, val)
                )

    def clone(self) -> MidiMapperStorage:
        """Return an independent copy."""
        return MidiMapperStorage(list(self.values), list(self.mapping), list(self.callbacks))


def kill_map(ident: int, storage: MidiMapperStorage) -> None:
    """Remove the single binding of controller ``ident`` from ``storage``."""
    kept = [entry for entry in storage.mapping if entry[0] != ident]
    if len(kept) != len(storage.mapping) - 1:
        raise ValueError(f"controller {ident} must be bound exactly once")
    storage.mapping = kept


@dataclass(frozen=True)
class _Binding:
    index: int
    coarse: int
    fine: int
    bijection: MidiBijection


def _value_callback(bi: MidiBijection, addr: str, type_tag: str) -> ValueCb:
    def emit(x: int, write: WriteCb) -> None:
        out = bi.from_midi(x)
        if type_tag == "f":
            arg = arg_val_from_float("f", out)
        else:
            arg = ArgVal("i", int(out))
        write(Message(addr, (arg,)))

    return emit


def _byte_callback(addr: str) -> ValueCb:
    def emit(x: int, write: WriteCb) -> None:
        write(Message(addr, (ArgVal("i", 0x7F & (x >> 7)),)))

    return emit


class MidiMapperNonRt:
    """Learns and forgets controller bindings outside the realtime thread.

    ``base_ports`` finds the :class:`Port` of a path; ``rt_cb`` receives the
    messages meant for the realtime side (none are sent while it is
    ``None``).  ``inv_map`` maps each bound path to its binding.
    """

    def __init__(self):
        self.storage: Optional[MidiMapperStorage] = None
        self.base_ports: Optional[PortLookup] = None
        self.rt_cb: Optional[WriteCb] = None
        self.learn_queue: deque[tuple[str, bool]] = deque()
        self.inv_map: dict[str, _Binding] = {}

    def _to_rt(self, msg: Message) -> None:
        if self.rt_cb is not None:
            self.rt_cb(msg)

    def _send_bind(self) -> None:
        self._to_rt(Message(BIND_PATH, (ArgVal("b", self.storage),)))

    def _port(self, addr: str) -> Port:
        if self.base_ports is None:
            raise RuntimeError("no port lookup set")
        port = self.base_ports(addr)
        if port is None:
            raise KeyError(f"unknown port {addr!r}")
        return port

    def map(self, addr: str, coarse: bool) -> None:
        """Queue ``addr`` to be bound to the next unbound controller moved."""
        if (addr, coarse) in self.learn_queue:
            return
        self.un_map(addr, coarse)
        self.learn_queue.append((addr, coarse))
        self._to_rt(Message(ADD_WATCH_PATH))

    def _generate_new_bijection(self, port: Port, addr: str) -> Optional[MidiMapperStorage]:
        meta = port.metadata
        if "min" not in meta or "max" not in meta:
            print(f"Rtosc-MIDI: Cannot Learn address = <{addr}>")
            print("Rtosc-MIDI: There are no min/max fields")
            return None
        bi = MidiBijection(0, _atof(meta.get("min")), _atof(meta.get("max")))
        type_tag = "i" if ":i" in port.name else "f"
        if bi.min == 0 and bi.max == 127 and type_tag == "i":
            callback = _byte_callback(addr)
        else:
            callback = _value_callback(bi, addr, type_tag)

        base = self.storage or MidiMapperStorage()
        nstorage = MidiMapperStorage(
            base.values + [0], list(base.mapping), base.callbacks + [callback]
        )
        self.inv_map[addr] = _Binding(len(nstorage.callbacks) - 1, -1, -1, bi)
        return nstorage

    def add_new_mapper(self, ident: int, port: Port, addr: str) -> None:
        """Bind controller ``ident`` as the coarse controller of ``addr``."""
        meta = port.metadata
        bi = MidiBijection(0, _atof(meta.get("min")), _atof(meta.get("max")))
        type_tag = "i" if ":i" in port.name else "f"
        callback = _value_callback(bi, addr, type_tag)

        base = self.storage or MidiMapperStorage()
        index = len(base.callbacks)
        self.storage = MidiMapperStorage(
            base.values + [0],
            base.mapping + [(ident, True, index)],
            base.callbacks + [callback],
        )
        self.inv_map[addr] = _Binding(index, ident, -1, bi)
        self._send_bind()

    def add_fine_mapper(self, ident: int, port: Port, addr: str) -> None:
        """Bind controller ``ident`` as the fine controller of an already bound ``addr``."""
        binding = self.inv_map[addr]
        self.inv_map[addr] = replace(binding, fine=ident)
        base = self.storage
        if base is None:
            raise RuntimeError("no storage to add a fine controller to")
        mapped = binding.index
        self.storage = MidiMapperStorage(
            list(base.values),
            base.mapping + [(ident, False, mapped)],
            base.callbacks + [base.callbacks[mapped]],
        )

    def use_free_id(self, ident: int) -> None:
        """Bind controller ``ident`` to the first path waiting to learn."""
        if not self.learn_queue:
            return
        addr, coarse = self.learn_queue.popleft()
        port = self._port(addr)

        if addr not in self.inv_map:
            nstorage = self._generate_new_bijection(port, addr)
            if nstorage is None:
                return
        else:
            nstorage = (self.storage or MidiMapperStorage()).clone()

        binding = self.inv_map[addr]
        nstorage.mapping = nstorage.mapping + [(ident, coarse, binding.index)]

        if coarse:
            if binding.coarse != -1:
                kill_map(binding.coarse, nstorage)
            self.inv_map[addr] = replace(binding, coarse=ident)
        else:
            if binding.fine != -1:
                kill_map(binding.fine, nstorage)
            self.inv_map[addr] = replace(binding, fine=ident)
        self.storage = nstorage
        self._send_bind()

    def un_map(self, addr: str, coarse: bool) -> None:
        """Remove the coarse or fine controller binding of ``addr``."""
        binding = self.inv_map.get(addr)
        if binding is None:
            return
        if coarse:
            kill_id = binding.coarse
            binding = replace(binding, coarse=-1)
        else:
            kill_id = binding.fine
            binding = replace(binding, fine=-1)

        if binding.coarse == -1 and binding.fine == -1:
            del self.inv_map[addr]
        else:
            self.inv_map[addr] = binding

        if kill_id == -1:
            return

        nstorage = (self.storage or MidiMapperStorage()).clone()
        kill_map(kill_id, nstorage)
        self.storage = nstorage
        self._send_bind()

    def clear(self) -> None:
        """Forget every binding and every pending learn request."""
        self.storage = MidiMapperStorage()
        self.learn_queue.clear()
        self.inv_map.clear()
        self._send_bind()

    def get_midi_mapping_strings(self) -> dict[str, str]:
        """Return a description of every bound or pending path.

        Pending requests are labelled with letters from ``A`` in queue order.
        """
        result = {addr: self.get_mapped_string(addr) for addr in self.inv_map}
        label = ord("A")
        for addr, coarse in self.learn_queue:
            if coarse:
                result[addr] = chr(label)
            else:
                result[addr] = result.get(addr, "") + ":" + chr(label)
            label += 1
        return result

    def get_mapped_string(self, addr: str) -> str:
        """Return ``"coarse:fine"`` for ``addr``, or its learn queue positions."""
        out = ""
        queue = list(self.learn_queue)
        binding = self.inv_map.get(addr)
        if binding is not None:
            if binding.coarse != -1:
                out += str(binding.coarse)
        elif (addr, True) in queue:
            out += str(queue.index((addr, True)))
        if binding is not None:
            if binding.fine != -1:
                out += f":{binding.fine}"
        elif (addr, False) in queue:
            out += str(queue.index((addr, False)))
        return out

    def get_bijection(self, addr: str) -> MidiBijection:
        """Return the value mapping of a bound path."""
        return self.inv_map[addr].bijection

    def snoop(self, msg: Message) -> None:
        """Reflect a parameter change onto the controllers bound to its path."""
        binding = self.inv_map.get(msg.path)
        if binding is None:
            return
        types = msg.types
        if types in ("f", "i"):
            value = float(msg.args[0].value)
        elif types == "T":
            value = 1.0
        elif types == "F":
            value = 0.0
        else:
            return

        new_midi = binding.bijection.to_midi(value)
        if binding.coarse != -1:
            self._apply_midi(new_midi >> 7, binding.coarse)
        if binding.fine != -1:
            self._apply_midi(0x7F & new_midi, binding.fine)

    def _apply_midi(self, val: int, ident: int) -> None:
        args = (ArgVal("i", 0), ArgVal("i", val), ArgVal("i", ident))
        self._to_rt(Message("/virtual_midi_cc", args))

    def set_bounds(self, addr: str, low: float, high: float) -> None:
        """Change the parameter range a bound path's controllers cover."""
        binding = self.inv_map.get(addr)
        if binding is None:
            return
        bi = MidiBijection(0, low, high)
        self.inv_map[addr] = replace(binding, bijection=bi)
        nstorage = (self.storage or MidiMapperStorage()).clone()
        nstorage.callbacks[binding.index] = _value_callback(bi, addr, "f")
        self.storage = nstorage
        self._send_bind()

    def get_bounds(self, addr: str) -> tuple[float, float, float, float]:
        """Return the port's range and the mapped range (``-1`` each if unbound)."""
        port = self._port(addr)
        min_val = _atof(port.metadata.get("min"))
        max_val = _atof(port.metadata.get("max"))
        binding = self.inv_map.get(addr)
        if binding is not None:
            return min_val, max_val, binding.bijection.min, binding.bijection.max
        return min_val, max_val, -1.0, -1.0

    def has(self, addr: str) -> bool:
        """Return whether ``addr`` has a binding."""
        return addr in self.inv_map

    def has_pending(self, addr: str) -> bool:
        """Return whether ``addr`` waits to learn a controller."""
        return any(a == addr for a, _ in self.learn_queue)

    def has_coarse(self, addr: str) -> bool:
        """Return whether ``addr`` has a coarse controller."""
        return self.get_coarse(addr) != -1

    def has_fine(self, addr: str) -> bool:
        """Return whether ``addr`` has a fine controller."""
        return self.get_fine(addr) != -1

    def has_coarse_pending(self, addr: str) -> bool:
        """Return whether ``addr`` waits to learn a coarse controller."""
        return (addr, True) in self.learn_queue

    def has_fine_pending(self, addr: str) -> bool:
        """Return whether ``addr`` waits to learn a fine controller."""
        return (addr, False) in self.learn_queue

    def get_coarse(self, addr: str) -> int:
        """Return the coarse controller id of ``addr``, or -1."""
        binding = self.inv_map.get(addr)
        return -1 if binding is None else binding.coarse

    def get_fine(self, addr: str) -> int:
        """Return the fine controller id of ``addr``, or -1."""
        binding = self.inv_map.get(addr)
        return -1 if binding is None else binding.fine


class MidiMapperRt:
    """Turns controller changes into parameter messages in the realtime thread.

    Unbound controllers are reported to the frontend as ``/midi-use-CC``
    while learn requests (watches) are outstanding.  Messages for a
    receiver that is ``None`` are dropped.
    """

    def __init__(self):
        self.storage: Optional[MidiMapperStorage] = None
        self.watch_size = 0
        self.pending: deque[int] = deque()
        self.backend: Optional[WriteCb] = None
        self.frontend: Optional[WriteCb] = None

    def set_backend_cb(self, cb: WriteCb) -> None:
        """Set the receiver of parameter messages."""
        self.backend = cb

    def set_frontend_cb(self, cb: WriteCb) -> None:
        """Set the receiver of controller-use reports."""
        self.frontend = cb

    def _to_backend(self, msg: Message) -> None:
        if self.backend is not None:
            self.backend(msg)

    def handle_cc(self, par: int, val: int, chan: int = 1, is_nrpn: bool = False) -> None:
        """Handle controller ``par`` set to ``val`` on channel ``chan`` (from 1)."""
        if chan < 1:
            chan = 1
        ident = (int(bool(is_nrpn)) << 18) + (((chan - 1) & 0x0F) << 14) + par
        handled = self.storage is not None and self.storage.handle_cc(
            ident, val, self._to_backend
        )
        if not handled and ident not in self.pending and self.watch_size:
            self.watch_size -= 1
            self.pending.append(ident)
            if self.frontend is not None:
                self.frontend(Message("/midi-use-CC", (ArgVal("i", ident),)))

    def add_watch(self) -> None:
        """Ask for one more unbound controller to be reported."""
        self.watch_size += 1

    def rem_watch(self) -> None:
        """Withdraw one outstanding watch."""
        if self.watch_size:
            self.watch_size -= 1

    def bind(self, storage: MidiMapperStorage) -> None:
        """Switch to ``storage``, keeping the values of the controllers it shares."""
        if self.pending:
            self.pending.popleft()
        if self.storage is not None:
            storage.clone_values(self.storage)
        self.storage = storage