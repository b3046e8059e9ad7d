"""Typed OSC argument values, comparison, versions, MIDI learn tables, automation slots and MIDI mapping."""

__version__ = "0.1.0"
__all__ = ["argval", "argcmp", "version", "miditable", "automations", "midimapper"]