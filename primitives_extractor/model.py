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
Records built and annotated by the primitives extractor
"""
from collections import namedtuple
from enum import Enum

from primitives_extractor.location import LocationStatus, parse_location

# =============================================================================

DEFAULT_MAX_FABRIC_CLOCK_SLOT = 16

FABRIC_CLKBUF_NAME = "FABRIC_CLKBUF"


class PortDirection(Enum):
    UNKNOWN = 0
    IN = 1
    OUT = 2
    INOUT = 3

    def label(self, cap=0):
        """
        Returns "input", "Input" or "INPUT" depending on the capitalization
        """
        name = self.name.lower()
        if self == PortDirection.IN:
            name = "input"
        elif self == PortDirection.OUT:
            name = "output"

        if cap == 1:
            return name.capitalize()
        elif cap == 2:
            return name.upper()
        return name


# One entry per bit of a top-level port. For inout ports there are two, one
# for each direction.
DesignPortInfo = namedtuple(
    "DesignPortInfo", "dir name fullname realname offset index width bidir"
)

Message = namedtuple("Message", "offset msg")

CoreClockInfo = namedtuple("CoreClockInfo", "module name location index")


def sort_name(names):
    """
    Sorts a "+" joined set of names alphabetically
    """
    parts = names.split("+")
    assert all(parts), names
    return "+".join(sorted(set(parts)))


# =============================================================================


class ExtractorContext:
    """
    Settings and state owned by a single extraction run
    """

    def __init__(
        self,
        technology="genesis3",
        debug=False,
        max_fabric_clock_slot=DEFAULT_MAX_FABRIC_CLOCK_SLOT,
        generation_order="inward",
        instance_cross_check=True
    ):
        assert generation_order in ("inward", "outward"), generation_order
        assert max_fabric_clock_slot > 0, max_fabric_clock_slot

        self.technology = technology
        self.debug = debug
        self.max_fabric_clock_slot = max_fabric_clock_slot
        self.generation_order = generation_order
        self.instance_cross_check = instance_cross_check

        self.standalone_tracker = {}

    def reset(self):
        self.standalone_tracker = {}

    def next_standalone_name(self, base):
        """
        Returns a unique "<base>#<n>" name
        """
        index = self.standalone_tracker.get(base, 0)
        self.standalone_tracker[base] = index + 1
        return "{}#{}".format(base, index)


# =============================================================================


class Primitive:
    """
    A primitive instantiated from a netlist cell. The parent and grandparent
    (chain root) are plain references, children are owned through the
    "child" dict which keeps the tracing order.
    """

    def __init__(
        self, db, name, parent, connections, is_port_primitive=False,
        bidir=False
    ):
        assert db is not None

        self.db = db
        self.name = name
        self.parent = parent
        self.grandparent = None
        if parent is not None:
            self.grandparent = parent if parent.grandparent is None \
                else parent.grandparent

        self.connections = dict(connections)
        self.is_port_primitive = is_port_primitive
        self.bidir = bidir

        self.data_width = -2
        self.parameters = {}

        # Child cell name -> Primitive
        self.child = {}
        # Child cell name -> intermediate nets on the path to the child
        self.child_connections = {}
        # Clock output port -> primitives using it as the fast clock
        self.gearbox_clocks = {}

        self.errors = []
        self.instance = None

    def __repr__(self):
        return "{}({} {})".format(type(self).__name__, self.db.name, self.name)

    def get_intrace_connection(self):
        assert self.db.intrace_connection in self.connections, self
        return self.connections[self.db.intrace_connection]

    def get_outtrace_connection(self):
        assert self.db.outtrace_connection in self.connections, self
        return self.connections[self.db.outtrace_connection]

    def set_instance(self, instance):
        assert instance is not None
        assert self.instance is None, self
        self.instance = instance

    def walk(self):
        """
        Yields this primitive and all its descendants, depth first
        """
        yield self
        for child in self.child.values():
            yield from child.walk()


class PortPrimitive(Primitive):
    """
    A chain root: a primitive tied to design port(s), or a standalone one
    """

    def __init__(self, db, name, connections, port_infos, bidir, context):
        super().__init__(db, name, None, connections, True, bidir)

        self.port_infos = list(port_infos)
        self.standalone_name = ""
        self.chain_data_width = -2

        is_standalone = db.is_standalone() or db.is_fabric_clkbuf()
        assert self.port_infos or is_standalone, name

        if is_standalone:
            self.dir = PortDirection.IN
        elif self.port_infos:
            self.dir = self.port_infos[0].dir
        else:
            self.dir = PortDirection.UNKNOWN

        assert self.dir in (PortDirection.IN, PortDirection.OUT), name
        for port in self.port_infos:
            assert port.dir == self.dir, (name, port)

        if is_standalone:
            base = db.name if db.is_standalone() else FABRIC_CLKBUF_NAME
            self.standalone_name = context.next_standalone_name(base)

    def linked_object(self):
        return sort_name("+".join(self.linked_objects()))

    def linked_objects(self):
        if self.db.is_standalone() or self.db.is_fabric_clkbuf():
            return [self.standalone_name]
        return [port.realname for port in self.port_infos]


# =============================================================================


class Instance:
    """
    A serializable record of a primitive (or of a pass-through wire when
    "primitive" is None)
    """

    def __init__(
        self,
        module,
        name,
        linked_objects,
        primitive,
        is_in_dir,
        pre_primitive="",
        post_primitives=(),
        gearbox_clocks=None
    ):
        assert len(linked_objects), name

        self.module = module
        self.name = name
        self.linked_objects = list(linked_objects)
        self.primitive = primitive
        self.is_in_dir = is_in_dir
        self.pre_primitive = pre_primitive
        self.post_primitives = list(post_primitives)

        self.gearbox_clocks = {}
        for port, primitives in (gearbox_clocks or {}).items():
            self.gearbox_clocks[port] = [p.name for p in primitives]

        self.connections = {}
        self.parameters = {}
        self.locations = {o: "" for o in self.linked_objects}
        self.properties = {o: {} for o in self.linked_objects}
        self.flags = [module]

        self.primary_object = ""
        self.parsed_location = None

    def __repr__(self):
        return "Instance({} {})".format(self.module, self.name)

    def is_wire(self):
        return self.primitive is None

    def errors(self):
        if self.primitive is None:
            return []
        return self.primitive.errors

    def add_connections(self, connections):
        for port, net in connections.items():
            self.connections[port] = net

    def add_parameters(self, parameters):
        for param, value in parameters.items():
            if len(value) >= 2 and value[0] == "\"" and value[-1] == "\"":
                value = value[1:-1]
            self.parameters[param] = value

    def linked_object(self):
        return sort_name("+".join(self.linked_objects))

    def location_status(self):
        if self.parsed_location is None:
            return LocationStatus.UNKNOWN
        return self.parsed_location.status

    def finalize_location(self):
        """
        Determines the primary object and location of the instance. Chain
        members inherit them from the chain root.
        """
        if self.parsed_location is not None:
            return
        self.primary_object = self._get_primary_object()
        self.parsed_location = parse_location(self._get_primary_location())

    def _root_instance(self):
        root = self.primitive.grandparent
        assert root.instance is not None, self
        assert root.instance.primitive.grandparent is None, self
        return root.instance

    def _get_primary_object(self, ports=("I_P", "O_P")):
        if self.primary_object or self.primitive is None:
            return self.primary_object

        if self.primitive.grandparent is not None:
            return self._root_instance()._get_primary_object(ports)

        # Prefer the object connected to the positive pin of a pair
        design_object = ""
        for port in ports:
            if port in self.connections:
                design_object = self.connections[port]
                break

        if self.locations.get(design_object, ""):
            return design_object

        # First object with a location
        for obj in self.linked_objects:
            if self.locations[obj]:
                return obj

        if design_object:
            return design_object
        return self.linked_objects[0]

    def _get_primary_location(self, ports=("I_P", "O_P")):
        if self.primitive is None:
            return ""

        if self.primitive.grandparent is not None:
            return self._root_instance()._get_primary_location(ports)

        obj = self._get_primary_object(ports)
        return self.locations.get(obj, "")


class PinPort:
    """
    Per physical pin information gathered by the summary
    """

    def __init__(self, name, primitive):
        self.name = name
        self.primitive = primitive
        self.is_input = primitive.db.is_in_dir()
        self.is_standalone = primitive.db.is_standalone()
        self.is_fabric_clkbuf = primitive.db.is_fabric_clkbuf()

        self.location = ""
        self.mode = ""
        self.traces = []
        self.full_traces = []
        self.skip_reason = ""

    def __repr__(self):
        return "PinPort({} {})".format(
            "input" if self.is_input else "output", self.name
        )


class FabricClock:
    """
    A clock net promoted to a fabric clock slot
    """

    def __init__(
        self, linked_object, module, name, iport, oport, inet, onet,
        is_fabric_clkbuf, gearboxes, core_logic
    ):
        assert len(gearboxes) or core_logic, name

        self.linked_object = linked_object
        self.module = module
        self.name = name
        self.iport = iport
        self.oport = oport
        self.inet = inet
        self.onet = onet
        self.is_fabric_clkbuf = is_fabric_clkbuf
        self.gearboxes = list(gearboxes)
        self.core_logic = core_logic

    def __repr__(self):
        return "FabricClock({} {}.{})".format(
            self.linked_object, self.name, self.oport
        )
