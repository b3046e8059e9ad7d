"""Automation slots that drive OSC parameters from MIDI controllers."""

from __future__ import annotations

import math
import sys
from dataclasses import dataclass, field
from typing import Callable, Optional

from .argval import ArgVal, arg_val_from_float
from .miditable import Message, Port, _atof, _exp, _log

__all__ = [
    "C_DATAENTRYHI",
    "C_DATAENTRYLO",
    "C_NRPNHI",
    "C_NRPNLO",
    "AutomationMapping",
    "Automation",
    "AutomationSlot",
    "AutomationMgr",
]

C_DATAENTRYHI = 0x06
C_DATAENTRYLO = 0x26
C_NRPNHI = 99
C_NRPNLO = 98

_DEFAULT_GAIN = 100.0


def _round_half_away(v: float) -> int:
    return math.floor(v + 0.5) if v >= 0 else -math.floor(-v + 0.5)


def _slot_name(slot_id: int) -> str:
    return f"Slot {slot_id + 1}"


@dataclass
class AutomationMapping:
    """How a slot value in 0..1 maps onto a parameter value."""

    control_points: list[float] = field(default_factory=list)
    npoints: int = 0
    upoints: int = 0
    control_scale: int = 0
    gain: float = _DEFAULT_GAIN
    offset: float = 0.0


@dataclass
class Automation:
    """One parameter bound to a slot."""

    map: AutomationMapping = field(default_factory=AutomationMapping)
    used: bool = False
    active: bool = False
    relative: bool = False
    param_base_value: float = 0.0
    param_path: str = ""
    param_type: Optional[str] = None
    param_min: float = 0.0
    param_max: float = 0.0
    param_step: float = 0.0


@dataclass
class AutomationSlot:
    """A group of automations driven by one controller."""

    name: str = ""
    automations: list[Automation] = field(default_factory=list)
    active: bool = False
    used: bool = False
    learning: int = -1
    midi_cc: int = -1
    midi_nrpn: int = -1
    current_state: float = 0.0


@dataclass
class _NrpnState:
    parhi: int = -1
    parlo: int = -1
    valhi: int = -1
    vallo: int = -1


class AutomationMgr:
    """Manages automation slots, MIDI learning and parameter messages.

    ``backend`` is called with every :class:`Message` a slot change produces.
    Indices out of range are ignored, as are ports that cannot be automated.
    """

    def __init__(self, slots: int, per_slot: int, control_points: int):
        self.nslots = slots
        self.per_slot = per_slot
        self.active_slot = 0
        self.learn_queue_len = 0
        self.damaged = False
        self.backend: Optional[Callable[[Message], None]] = None
        self._lookup: Optional[Callable[[str], Optional[Port]]] = None
        self._nrpn = _NrpnState()
        self.slots = [
            AutomationSlot(
                name=_slot_name(i),
                automations=[
                    Automation(
                        map=AutomationMapping(
                            control_points=[0.0] * control_points,
                            npoints=control_points,
                        )
                    )
                    for _ in range(per_slot)
                ],
            )
            for i in range(slots)
        ]

    def _valid_slot(self, slot_id: int) -> bool:
        return 0 <= slot_id < self.nslots

    def _valid_sub(self, slot_id: int, sub: int) -> bool:
        return self._valid_slot(slot_id) and 0 <= sub < self.per_slot

    def set_ports(self, lookup: Callable[[str], Optional[Port]]) -> None:
        """Set the function that finds the port for a path."""
        self._lookup = lookup

    def _learnable_port(self, path: str) -> Optional[Port]:
        if self._lookup is None:
            raise RuntimeError("no port lookup set")
        port = self._lookup(path)
        if port is None:
            print(f"[Error] port '{path}' does not exist", file=sys.stderr)
            return None
        meta = port.metadata
        if not ("min" in meta and "max" in meta) and ":T" not in port.name:
            print(f"No bounds for '{path}' known", file=sys.stderr)
            return None
        if "internal" in meta or "no learn" in meta:
            print(f"[Warning] port '{path}' is unlearnable", file=sys.stderr)
            return None
        return port

    @staticmethod
    def _configure(au: Automation, port: Port, path: str, log_plain_min: bool) -> None:
        meta = port.metadata
        au.used = True
        au.active = True
        if ":f" in port.name:
            au.param_type = "f"
        elif ":T" in port.name:
            au.param_type = "T"
        else:
            au.param_type = "i"
        if au.param_type == "T":
            au.param_min, au.param_max = 0.0, 1.0
        else:
            au.param_min = _atof(meta.get("min"))
            au.param_max = _atof(meta.get("max"))
        au.param_path = path

        scale = meta.get("scale")
        if scale and "log" in scale:
            au.map.control_scale = 1
            logmin = meta.get("logmin")
            if logmin is not None:
                au.param_min = _log(_atof(logmin))
            elif log_plain_min:
                au.param_min = _log(au.param_min)
            au.param_max = _log(au.param_max)
        else:
            au.map.control_scale = 0

    def create_binding(self, slot: int, path: str, start_midi_learn: bool) -> None:
        """Bind the parameter at ``path`` to the first free automation of ``slot``."""
        port = self._learnable_port(path)
        if port is None:
            return
        target = self.slots[slot]
        ind = next((i for i, a in enumerate(target.automations) if not a.used), -1)
        if ind == -1:
            return

        target.used = True
        au = target.automations[ind]
        self._configure(au, port, path, log_plain_min=False)
        au.map.gain = _DEFAULT_GAIN
        au.map.offset = 0.0
        self.update_mapping(slot, ind)

        if start_midi_learn and target.learning == -1 and target.midi_cc == -1:
            self.learn_queue_len += 1
            target.learning = self.learn_queue_len

        self.damaged = True

    def update_mapping(self, slot_id: int, sub: int) -> None:
        """Recompute the linear mapping from the parameter bounds, gain and offset."""
        if not self._valid_sub(slot_id, sub):
            return
        au = self.slots[slot_id].automations[sub]
        mn, mx = au.param_min, au.param_max
        center = (mn + mx) * (0.5 + au.map.offset / 100.0)
        span = (mx - mn) * au.map.gain / 100.0
        au.map.upoints = 2
        au.map.control_points[:4] = [0.0, center - span / 2.0, 1.0, center + span / 2.0]

    def set_slot(self, slot_id: int, value: float) -> None:
        """Set a slot to ``value`` in 0..1, updating every bound parameter."""
        if not self._valid_slot(slot_id):
            return
        for i in range(self.per_slot):
            self.set_slot_sub(slot_id, i, value)
        self.slots[slot_id].current_state = value

    def set_slot_sub(self, slot_id: int, par: int, value: float) -> None:
        """Send the parameter value of one automation for slot value ``value``."""
        if not self._valid_sub(slot_id, par):
            return
        au = self.slots[slot_id].automations[par]
        if not au.used:
            return
        mn, mx = au.param_min, au.param_max
        a, b = au.map.control_points[1], au.map.control_points[3]
        v = value * (b - a) + a
        kind = au.param_type

        if kind in ("i", "f"):
            v = min(v, mx) if v > mx else max(v, mn)
            if kind == "i":
                args = (ArgVal("i", _round_half_away(v)),)
            else:
                if au.map.control_scale == 1:
                    v = _exp(v)
                args = (arg_val_from_float("f", v),)
        elif kind in ("T", "F"):
            args = (ArgVal("T", True),) if v > 0.5 else (ArgVal("F", False),)
        else:
            return

        if self.backend:
            self.backend(Message(au.param_path, args))

    def get_slot(self, slot_id: int) -> float:
        """Return the last value a slot was set to, 0.0 for a bad index."""
        if not self._valid_slot(slot_id):
            return 0.0
        return self.slots[slot_id].current_state

    def clear_slot(self, slot_id: int) -> None:
        """Reset a slot and all its automations."""
        if not self._valid_slot(slot_id):
            return
        s = self.slots[slot_id]
        s.active = False
        s.used = False
        if s.learning:
            self.learn_queue_len -= 1
        for other in self.slots:
            if other.learning > s.learning:
                other.learning -= 1
        s.learning = -1
        s.midi_cc = -1
        s.midi_nrpn = -1
        s.current_state = 0.0
        s.name = _slot_name(slot_id)
        for i in range(self.per_slot):
            self.clear_slot_sub(slot_id, i)
        self.damaged = True

    def clear_slot_sub(self, slot_id: int, sub: int) -> None:
        """Reset one automation of a slot."""
        if not self._valid_sub(slot_id, sub):
            return
        a = self.slots[slot_id].automations[sub]
        a.used = False
        a.active = False
        a.relative = False
        a.param_base_value = 0.0
        a.param_path = ""
        a.param_type = None
        a.param_min = 0.0
        a.param_max = 0.0
        a.param_step = 0.0
        a.map.gain = _DEFAULT_GAIN
        a.map.offset = 0.0
        self.damaged = True

    def set_slot_sub_path(self, slot: int, ind: int, path: str) -> None:
        """Bind the parameter at ``path`` to automation ``ind`` of ``slot``."""
        if not self._valid_slot(slot):
            return
        port = self._learnable_port(path)
        if port is None:
            return
        self.slots[slot].used = True
        au = self.slots[slot].automations[ind]
        self._configure(au, port, path, log_plain_min=True)
        self.update_mapping(slot, ind)
        self.damaged = True

    def set_slot_sub_gain(self, slot_id: int, sub: int, gain: float) -> None:
        """Set the gain (in percent) of one automation."""
        if self._valid_sub(slot_id, sub):
            self.slots[slot_id].automations[sub].map.gain = gain

    def get_slot_sub_gain(self, slot_id: int, sub: int) -> float:
        """Return the gain of one automation, 0.0 for a bad index."""
        if not self._valid_sub(slot_id, sub):
            return 0.0
        return self.slots[slot_id].automations[sub].map.gain

    def set_slot_sub_offset(self, slot_id: int, sub: int, offset: float) -> None:
        """Set the offset (in percent) of one automation."""
        if self._valid_sub(slot_id, sub):
            self.slots[slot_id].automations[sub].map.offset = offset

    def get_slot_sub_offset(self, slot_id: int, sub: int) -> float:
        """Return the offset of one automation, 0.0 for a bad index."""
        if not self._valid_sub(slot_id, sub):
            return 0.0
        return self.slots[slot_id].automations[sub].map.offset

    def set_name(self, slot_id: int, name: str) -> None:
        """Rename a slot."""
        if not self._valid_slot(slot_id):
            return
        self.slots[slot_id].name = name
        self.damaged = True

    def get_name(self, slot_id: int) -> str:
        """Return a slot's name, or an empty string for a bad index."""
        if not self._valid_slot(slot_id):
            return ""
        return self.slots[slot_id].name

    def _set_parameter_number(self, type: int, value: int) -> None:
        n = self._nrpn
        if type == C_NRPNHI:
            n.parhi, n.valhi, n.vallo = value, -1, -1
        elif type == C_NRPNLO:
            n.parlo, n.valhi, n.vallo = value, -1, -1
        elif type == C_DATAENTRYHI:
            if n.parhi >= 0 and n.parlo >= 0:
                n.valhi = value
        elif type == C_DATAENTRYLO:
            if n.parhi >= 0 and n.parlo >= 0:
                n.vallo = value

    def _get_nrpn(self) -> Optional[tuple[int, int, int, int]]:
        n = self._nrpn
        if min(n.parhi, n.parlo, n.valhi, n.vallo) < 0:
            return None
        return n.parhi, n.parlo, n.valhi, n.vallo

    def handle_midi(self, channel: int, type: int, val: int) -> bool:
        """Handle a controller change; return whether a bound slot took it.

        NRPN controllers are tracked regardless of channel.  An unbound
        controller is learned by the slot first in the learn queue.
        """
        is_nrpn = False
        par_id = 0
        if type in (C_DATAENTRYHI, C_DATAENTRYLO, C_NRPNHI, C_NRPNLO):
            self._set_parameter_number(type, val)
            nrpn = self._get_nrpn()
            if nrpn is not None:
                parhi, parlo, valhi, vallo = nrpn
                is_nrpn = True
                par_id = (parhi << 7) + parlo
                value = (valhi << 7) + vallo
                bound = False
                for i, s in enumerate(self.slots):
                    if s.midi_nrpn == par_id:
                        bound = True
                        self.set_slot(i, value / 16383.0)
                if bound:
                    return True
        else:
            par_id = channel * 128 + type
            bound = False
            for i, s in enumerate(self.slots):
                if s.midi_cc == par_id:
                    bound = True
                    self.set_slot(i, val / 127.0)
            if bound:
                return True

        for i, s in enumerate(self.slots):
            if s.learning == 1:
                s.learning = -1
                if is_nrpn:
                    s.midi_nrpn = par_id
                else:
                    s.midi_cc = par_id
                for other in self.slots:
                    if other.learning > 1:
                        other.learning -= 1
                self.learn_queue_len -= 1
                self.set_slot(i, val / 127.0)
                self.damaged = True
                break
        return False

    def simple_slope(self, slot_id: int, par: int, slope: float, offset: float) -> None:
        """Set a linear mapping of the given slope around ``offset``."""
        if not self._valid_sub(slot_id, par):
            return
        m = self.slots[slot_id].automations[par].map
        m.upoints = 2
        m.control_points[:4] = [0.0, -(slope / 2) + offset, 1.0, slope / 2 + offset]

    def free_slot(self) -> int:
        """Return the index of the first unused slot, or -1."""
        return next((i for i, s in enumerate(self.slots) if not s.used), -1)