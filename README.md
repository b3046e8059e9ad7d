# oscmap

Building blocks for driving Open Sound Control parameters from MIDI
controllers: typed argument values, a MIDI learn table, automation slots and
a coarse/fine 14-bit MIDI mapper. Pure Python, no dependencies.

## Modules

### `oscmap.argval`

`ArgVal(type, value)` is one typed OSC argument, such as `ArgVal("i", 42)` or
`ArgVal("f", 0.5)`. Integers of type `i` and `c` wrap to 32 bits, `h` to 64
bits, and `f` values are rounded to single precision.

- `null_arg_val`, `arg_val_from_int` and `arg_val_from_float` build values of
  a given type tag. For `T`/`F` the truth of the number picks the tag.
- `add`, `sub`, `mult`, `div`, `negate`, `rounded` and `to_int` do the
  arithmetic. Booleans add and subtract as exclusive or and multiply as
  logical and. Integer division truncates towards zero. Dividing by `F` or
  dividing integers by zero raises `ZeroDivisionError`.
- `array_header(element_type, length)` starts an array; its elements follow
  it in the list. `range_header(count, has_delta)` starts a range (a count of
  0 means infinite). The delta, if there is one, follows it, and then the
  start value. `range_arg` computes `start + ith * delta`.
- `ArgValIterator` walks such a list, expanding ranges and stepping over
  array bodies. `flatten_arg_vals(args, nargs)` returns the expanded values
  and raises `ValueError` on an infinite range.

An operation that is not defined for its argument types raises
`ArgValTypeError`, a subclass of `TypeError`.

### `oscmap.argcmp`

- `arg_vals_eq` and `arg_vals_cmp` compare two lists of values with ranges
  expanded. `arg_vals_cmp` gives a three-way result.
- `arg_val_eq_single` and `arg_val_cmp_single` compare one value. For an
  array, pass the header with its elements following.
- `CmpOptions(float_tolerance=...)` allows `f` and `d` values to differ by
  up to the given amount.

Values of different types are ordered by their type tag. A time tag of 1
("immediately") sorts below every other time tag.

### `oscmap.version`

`Version(major, minor, revision)` takes parts from 0 to 255. It prints as
`major.minor.revision` and orders like a tuple. `version_cmp` returns 1, 0
or -1.

### `oscmap.miditable`

`MidiTable(lookup)` binds (channel, controller) pairs to parameter paths.
`lookup` maps a path to a `Port(name, metadata, ports)` or `None`. A port
named like `"volume:f"` is treated as a float, `:i` as an int, `:T` as a
toggle and `:c` as a char.

- `add_elm(ch, ctl, path)` binds directly.
- `learn(path)` binds `path` to the next unbound controller passed to
  `process`.
- `clear_entry(path)` removes a binding.
- `process(ch, ctl, val)` calls `event_cb` with a `Message(path, args)`.
  Float parameters are scaled by `translate(val, metadata)` using the
  `min`, `max`, `scale` (`linear` or `logarithmic`) and optional `logmin`
  metadata. The value 64 maps to the exact middle.
- `error_cb(reason, path)`, `event_cb(message)` and
  `modify_cb(action, path, conversion, ch, ctl)` can be replaced.
  `modify_cb` receives the actions `ADD`, `REPLACE` and `DEL`.

```python
from oscmap.miditable import MidiTable, Port

ports = {"/volume": Port("volume:f", {"min": "0", "max": "1", "scale": "linear"})}
table = MidiTable(ports.get)
received = []
table.event_cb = received.append

table.learn("/volume")
table.process(0, 7, 127)   # controller 7 on channel 0 is learned
table.process(0, 7, 64)    # emits Message("/volume", (ArgVal("f", 0.5),))
```

### `oscmap.automations`

`AutomationMgr(slots, per_slot, control_points)` manages automation slots.
Each slot drives up to `per_slot` parameters from one value between 0 and 1.

- `set_ports(lookup)` sets the port lookup.
- `create_binding` and `set_slot_sub_path` bind a parameter to a slot.
- `set_slot` and `set_slot_sub` send the resulting `Message`s to `backend`.
- `update_mapping` and `simple_slope` shape the linear mapping. The gain and
  offset (both in percent) are set and read with `set_slot_sub_gain`,
  `get_slot_sub_gain`, `set_slot_sub_offset` and `get_slot_sub_offset`.
- `clear_slot` and `clear_slot_sub` reset slots. `set_name` and `get_name`
  rename them. `free_slot` finds an unused slot.
- `handle_midi(channel, type, val)` routes CC and NRPN controllers (the
  constants `C_NRPNHI`, `C_NRPNLO`, `C_DATAENTRYHI`, `C_DATAENTRYLO`) to
  bound slots. Slots that were bound with `start_midi_learn=True` learn
  unbound controllers, in queue order.

Ports without `min`/`max` metadata (other than toggles), or marked
`internal` or `no learn`, are refused with a message on stderr. Out-of-range
slot indices are ignored.

```python
from oscmap.automations import AutomationMgr

mgr = AutomationMgr(4, 2, 4)
mgr.set_ports(ports.get)
sent = []
mgr.backend = sent.append
mgr.create_binding(0, "/volume", False)
mgr.set_slot(0, 0.25)      # sends Message("/volume", (ArgVal("f", 0.25),))
```

### `oscmap.midimapper`

This module is a coarse/fine MIDI mapper with two halves.

`MidiMapperNonRt` keeps the bindings in `inv_map`. It builds new
`MidiMapperStorage` objects and sends them to `rt_cb` as a
`BIND_PATH` (`/midi-learn/midi-bind`) message whose blob argument is the
storage itself. Learn requests are announced with `ADD_WATCH_PATH`.

- `map`, `use_free_id`, `add_new_mapper` and `add_fine_mapper` create
  bindings. `un_map` and `clear` remove them.
- `set_bounds` and `get_bounds` change and report the mapped range.
- `snoop(message)` reflects a parameter change back as `/virtual_midi_cc`
  messages.
- The queries are `has`, `has_pending`, `has_coarse`, `has_fine`,
  `has_coarse_pending`, `has_fine_pending`, `get_coarse`, `get_fine`,
  `get_bijection`, `get_mapped_string` and `get_midi_mapping_strings`.

`MidiMapperRt` handles the realtime side.

- `handle_cc(par, val, chan=1, is_nrpn=False)` updates the bound 14-bit value
  and sends the parameter message to the backend callback. While watches are
  outstanding (`add_watch`, `rem_watch`), it reports unbound controllers to
  the frontend as `/midi-use-CC`.
- `bind(storage)` switches to a new storage and keeps the shared controller
  values.

`MidiBijection` maps parameter values linearly to 14-bit MIDI values
(`to_midi`) and back (`from_midi`). `kill_map` removes one controller
binding from a storage.

The two halves are wired together by the caller:

```python
from oscmap.midimapper import ADD_WATCH_PATH, BIND_PATH, MidiMapperNonRt, MidiMapperRt

rt, non_rt = MidiMapperRt(), MidiMapperNonRt()
non_rt.base_ports = ports.get

def to_rt(msg):
    if msg.path == BIND_PATH:
        rt.bind(msg.args[0].value)
    elif msg.path == ADD_WATCH_PATH:
        rt.add_watch()

non_rt.rt_cb = to_rt
rt.set_frontend_cb(lambda msg: non_rt.use_free_id(msg.args[0].value))
out = []
rt.set_backend_cb(out.append)

non_rt.map("/volume", True)
rt.handle_cc(7, 100)   # unbound: reported, then learned as coarse controller 7
rt.handle_cc(7, 64)    # emits Message("/volume", (ArgVal("f", 0.5),))
```

## What this package does not do

- It does not encode or decode OSC packets. Messages are `Message` objects
  with a path and a tuple of `ArgVal`s.
- It has no port tree and no dispatcher. Ports are found through a lookup
  function that you supply.
- It does not read or write savefiles. `Version` only models and compares
  version numbers.
- It does no MIDI or network I/O, and it has no command-line tool.

## Installing and testing

```
pip install .
pip install ".[test]"
pytest
```