#!/usr/bin/env python3
# -*- coding: utf-8 -*-
#
# Copyright (C) 2021 The SymbiFlow Authors.
#
# Use of this source code is governed by a ISC-style
# license that can be found in the LICENSE file or at
# https://opensource.org/licenses/ISC
#
# SPDX-License-Identifier: ISC
"""
A read-only view of a synthesized netlist.

The extractor only needs a narrow query interface: the wires and cells of a
module, the per-port connections of a cell and the module-level net aliasing
pairs ("assign lhs = rhs"). Each connection is a bit vector (a SigSpec) given
as a list of bits, LSB first. A bit is either a (wire name, index) tuple or a
constant character ("0", "1", "x" or "z").
"""
import re

# =============================================================================

CONST_BITS = {"0", "1", "x", "z"}

CONST_NET_RE = re.compile(r"^__const_bit_(?P<value>.)__$")


class NetlistError(Exception):
    """
    Raised when a netlist cannot be loaded or queried
    """
    pass


# =============================================================================


class Wire:
    """
    A module wire. Ports are wires with the input and/or output flag set.
    """

    def __init__(
        self, name, width=1, start_offset=0, port_input=False, port_output=False
    ):
        assert width > 0, (name, width)

        self.name = name
        self.width = width
        self.start_offset = start_offset
        self.port_input = port_input
        self.port_output = port_output

    def bit(self, index=0):
        """
        Returns a single bit of the wire
        """
        assert index >= 0 and index < self.width, (self.name, index)
        return (self.name, index)

    def sig(self):
        """
        Returns the whole wire as a SigSpec
        """
        return [(self.name, i) for i in range(self.width)]


class Cell:
    """
    A cell instance with its parameters and port connections
    """

    def __init__(self, name, type):
        self.name = name
        self.type = type

        # Port connections as SigSpecs, kept in insertion order
        self.connections = {}

        self.parameters = {}  # name: value, strings


class Module:
    """
    A netlist module
    """

    def __init__(self, name):
        self.name = name
        self.wires = {}
        self.cells = {}

        # List of (lhs, rhs) SigSpec pairs
        self.connections = []

    def add_wire(self, name, width=1, start_offset=0, direction=None):
        """
        Adds a wire. Direction may be None, "input", "output" or "inout".
        """
        assert name not in self.wires, name
        assert direction in (None, "input", "output", "inout"), direction

        wire = Wire(
            name,
            width=width,
            start_offset=start_offset,
            port_input=direction in ("input", "inout"),
            port_output=direction in ("output", "inout"),
        )
        self.wires[name] = wire
        return wire

    def add_cell(self, name, type, connections=None, parameters=None):
        """
        Adds a cell. Connection values may be a wire name, a Wire, a single
        bit or a SigSpec.
        """
        assert name not in self.cells, name

        cell = Cell(name, type)
        for port, value in (connections or {}).items():
            cell.connections[port] = self.to_sig(value)
        for param, value in (parameters or {}).items():
            cell.parameters[param] = str(value)

        self.cells[name] = cell
        return cell

    def connect(self, lhs, rhs):
        """
        Adds an aliasing pair, equivalent of "assign lhs = rhs"
        """
        lhs = self.to_sig(lhs)
        rhs = self.to_sig(rhs)
        if len(lhs) != len(rhs):
            raise NetlistError(
                "Width mismatch in connection {} = {}".format(
                    self.sigspec_str(lhs), self.sigspec_str(rhs)
                )
            )
        self.connections.append((lhs, rhs))

    def to_sig(self, value):
        """
        Normalizes a value to a SigSpec
        """
        if isinstance(value, Wire):
            return value.sig()
        if isinstance(value, str):
            if value in CONST_BITS:
                return [value]
            if value not in self.wires:
                raise NetlistError("Unknown wire '{}'".format(value))
            return self.wires[value].sig()
        if isinstance(value, tuple):
            return [value]
        return list(value)

    def bit_name(self, bit):
        """
        Returns the name of a single bit
        """
        if isinstance(bit, str):
            assert bit in CONST_BITS, bit
            return "__const_bit_{}__".format(bit)

        name, index = bit
        wire = self.wires.get(name, None)
        if wire is not None and wire.width == 1 and index == 0:
            return name
        return "{}[{}]".format(name, index)

    def get_signals(self, sig):
        """
        Returns per-bit net names of a SigSpec (LSB first)
        """
        return [self.bit_name(bit) for bit in sig]

    def sigspec_str(self, sig):
        """
        Returns a net name for a SigSpec. Single bits are named directly,
        vectors are written as "{ msb ... lsb }".
        """
        return sigspec_str(self.get_signals(sig))


class Design:
    """
    A set of modules with one of them marked as the top
    """

    def __init__(self):
        self.modules = {}
        self.top = None

    def add_module(self, name, top=False):
        assert name not in self.modules, name

        self.modules[name] = Module(name)
        if top or self.top is None:
            self.top = name
        return self.modules[name]

    def top_module(self):
        if self.top is None:
            raise NetlistError("The design has no top module")
        return self.modules[self.top]

    @staticmethod
    def from_yosys_json(json_root, top=None):
        """
        Builds a design from a Yosys "write_json" dict.

        In a Yosys JSON netlist aliased nets share bit ids. Each bit id is
        resolved to a single canonical wire (port wires first, then named
        wires, then internal ones) so no aliasing pairs are produced.
        """
        design = Design()

        # Find the top-level module
        if top is None:
            for mod_name, mod_data in json_root["modules"].items():
                attributes = mod_data.get("attributes", {})
                if "top" in attributes and decode_param(attributes["top"]) \
                   not in ("0", ""):
                    top = mod_name
                    break

        if top is None:
            if len(json_root["modules"]) != 1:
                raise NetlistError("Cannot determine the top-level module")
            top = next(iter(json_root["modules"]))

        if top not in json_root["modules"]:
            raise NetlistError("Module '{}' not found".format(top))

        for mod_name, mod_data in json_root["modules"].items():
            module = design.add_module(mod_name, top=(mod_name == top))
            _load_yosys_module(module, mod_data)

        design.top = top
        return design


# =============================================================================


def sigspec_str(signals):
    """
    Formats a list of per-bit names (LSB first) as a single string
    """
    if len(signals) == 1:
        return signals[0]
    return "{ " + " ".join(reversed(signals)) + " }"


def is_real_net(net):
    """
    Returns True if the net is neither a constant nor unconnected
    """
    if not net:
        return False
    return CONST_NET_RE.match(net) is None


def decode_param(value):
    """
    Decodes a Yosys JSON parameter value to a string. Binary strings become
    decimal numbers unless they contain x/z bits.
    """
    if isinstance(value, int):
        return str(value)

    assert isinstance(value, str), value

    if value and set(value) <= {"0", "1"}:
        return str(int(value, 2))
    if value and set(value) <= {"0", "1", "x", "z"}:
        return value

    # Yosys pads strings that look like binary with a trailing space
    if value.endswith(" ") and set(value[:-1]) <= {"0", "1", "x", "z", " "}:
        return value[:-1]
    return value


def _load_yosys_module(module, mod_data):
    """
    Fills in a module from its Yosys JSON representation
    """

    ports = mod_data.get("ports", {})
    netnames = mod_data.get("netnames", {})

    # Ports not listed among netnames still need wires
    wire_defs = {}
    for name, data in netnames.items():
        wire_defs[name] = data
    for name, data in ports.items():
        if name not in wire_defs:
            wire_defs[name] = data

    # Resolve bit ids to canonical (wire, index) pairs
    def rank(item):
        name, data = item
        if name in ports:
            return 0
        if not data.get("hide_name", 0) and not name.startswith("$"):
            return 1
        return 2

    bit_map = {}
    for name, data in sorted(wire_defs.items(), key=rank):
        for index, bit in enumerate(data["bits"]):
            if isinstance(bit, int) and bit not in bit_map:
                bit_map[bit] = (name, index)

    for name, data in wire_defs.items():
        direction = None
        if name in ports:
            direction = ports[name]["direction"]
        module.add_wire(
            name,
            width=len(data["bits"]),
            start_offset=int(data.get("offset", 0)),
            direction=direction,
        )

    def to_bit(bit):
        if isinstance(bit, int):
            if bit not in bit_map:
                raise NetlistError(
                    "Bit {} of module '{}' has no net name".format(
                        bit, module.name
                    )
                )
            return bit_map[bit]
        if bit not in CONST_BITS:
            raise NetlistError("Invalid bit '{}'".format(bit))
        return bit

    for name, data in mod_data.get("cells", {}).items():
        cell = module.add_cell(name, data["type"])
        for port, bits in data.get("connections", {}).items():
            cell.connections[port] = [to_bit(b) for b in bits]
        for param, value in data.get("parameters", {}).items():
            cell.parameters[param] = decode_param(value)

    # Explicit aliasing pairs are not part of the Yosys format, accept them
    # when present.
    for conn in mod_data.get("connections", []):
        module.connect(
            [to_bit(b) for b in conn["lhs"]], [to_bit(b) for b in conn["rhs"]]
        )
