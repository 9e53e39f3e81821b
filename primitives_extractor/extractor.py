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
I/O primitives extractor.

Finds the supported I/O primitives instantiated in the top module of a
synthesized netlist, reconstructs the chain each design port goes through,
decides which clocks have to be routed to the fabric and flattens the result
into a list of instances that the report and constraint writers consume.
"""
import logging

from primitives_extractor.location import LocationStatus
from primitives_extractor.model import ExtractorContext, PortDirection, \
    DesignPortInfo, Message, Primitive, PortPrimitive, Instance, PinPort, \
    FabricClock, FABRIC_CLKBUF_NAME
from primitives_extractor.netlist import is_real_net
from primitives_extractor.primitives import PrimitiveRequirement, \
    SUPPORTED_PRIMITIVES, TRACE_ORDER

# =============================================================================

SECONDARY_PIN_REASON = "This is secondary pin. But IO bitstream generation " \
    "will still make sure it is used in pair. Otherwise the IO bitstream " \
    "will be invalid"


def get_param_string(value):
    """
    Strips the quotes of a string parameter
    """
    if len(value) >= 2 and value[0] == "\"" and value[-1] == "\"":
        return value[1:-1]
    return value


def get_alias_pairs(module):
    """
    Expands the module aliasing pairs into per-bit (lhs, rhs) net name pairs
    """
    pairs = []
    for lhs, rhs in module.connections:
        left_signals = module.get_signals(lhs)
        right_signals = module.get_signals(rhs)
        assert len(left_signals) == len(right_signals)
        pairs.extend(zip(left_signals, right_signals))
    return pairs


def join_trace(traces, is_in_dir):
    """
    Joins primitive names into "A -> B -> C". Output chains are listed from
    the fabric side.
    """
    assert all(traces), traces
    if not is_in_dir:
        traces = list(reversed(traces))
    return " -> ".join(traces)


# =============================================================================


class PrimitivesExtractor:
    """
    Extracts I/O primitives from a netlist. A single object serves a single
    extraction run.
    """

    # ...........................................

    class Exception(Exception):
        """
        Exception for broken preconditions of the extractor
        """

        def __init__(self, message):
            self.message = message

        def __str__(self):
            return self.message

        def __repr__(self):
            return self.message

    # ...........................................

    def __init__(self, technology, context=None):
        self.technology = technology
        if context is None:
            context = ExtractorContext(technology=technology)
        self.context = context

        self.status = True
        self.netlist_status = True

        self.msgs = []
        self.ports = []
        self.child_primitives = []
        self.traced_cells = {}
        self.instances = []
        self.pin_infos = []
        self.fabric_clocks = []

        self.aliases = []
        self.summarized = False

        self.max_in_object_name = 0
        self.max_out_object_name = 0
        self.max_object_name = 0
        self.max_trace = 0

        if self.technology not in SUPPORTED_PRIMITIVES:
            self.status = False
            self.post_msg(
                1, "Error: Technology {} is not supported".format(technology)
            )

    def overall_status(self):
        return self.status and self.netlist_status

    def post_msg(self, offset, msg):
        """
        Stores a message for the report and forwards it to the log
        """
        self.msgs.append(Message(offset, msg))

        text = "{}{}".format("  " * offset, msg)
        if msg.startswith("Error"):
            logging.error(text)
        elif msg.startswith("Warning"):
            logging.warning(text)
        else:
            logging.debug(text)

    def error(self, offset, msg, primitive=None):
        """
        Posts an error, attaches it to the primitive (if any) and downgrades
        the netlist status
        """
        self.post_msg(offset, "Error: {}".format(msg))
        if primitive is not None:
            primitive.errors.append(msg)
        self.netlist_status = False

    # =========================================================================

    def extract(self, design):
        """
        Runs the whole extraction over the top module of the design. Returns
        the recognition status.
        """
        self.context.reset()

        if not self.status:
            return self.status

        module = design.top_module()
        self.aliases = get_alias_pairs(module)

        # Port and standalone primitives
        if not self.get_ports(module):
            return self.status

        # Chains
        for src, dst in TRACE_ORDER[self.technology]:
            self.trace_next_primitive(module, src, dst)

        # Fabric clock buffers are the last ones to join as roots
        self.trace_fabric_clkbuf(module)

        # Fast clocks are routed but do not extend any chain
        self.trace_gearbox_fast_clock()

        if self.status:
            self.gen_instances()
            self.determine_fabric_clock(module)
            self.summarize()
            self.finalize(module)

        return self.status

    # =========================================================================

    def is_supported_primitive(
        self, name, req=PrimitiveRequirement.DONT_CARE
    ):
        """
        Returns the descriptor of a ready primitive type that meets the
        requirement, None otherwise. The first descriptor with a matching
        name decides.
        """
        for db in SUPPORTED_PRIMITIVES[self.technology]:
            if not db.is_ready() or db.name != name:
                continue

            if req == PrimitiveRequirement.DONT_CARE or \
               (req == PrimitiveRequirement.IS_PORT and db.is_port()) or \
               (req == PrimitiveRequirement.NOT_PORT and not db.is_port()) or \
               (req == PrimitiveRequirement.IS_STANDALONE and
                db.is_standalone()) or \
               (req == PrimitiveRequirement.IS_FABRIC_CLKBUF and
                db.is_fabric_clkbuf()):
                return db
            return None

        return None

    def get_ports(self, module):
        assert not self.ports
        assert self.status

        self.post_msg(1, "Get Ports")

        port_infos = []
        for wire in module.wires.values():
            if wire.port_input and wire.port_output:
                dir = PortDirection.INOUT
            elif wire.port_input:
                dir = PortDirection.IN
            elif wire.port_output:
                dir = PortDirection.OUT
            else:
                continue

            for index in range(wire.width):
                fullname = wire.name
                realname = wire.name
                if wire.width > 1:
                    fullname = "{}[{}]".format(wire.name, index)
                    realname = "{}[{}]".format(
                        wire.name, wire.start_offset + index
                    )

                self.post_msg(
                    2, "Detect {} port {} (index={}, width={}, offset={})".
                    format(
                        dir.label(), wire.name, index, wire.width,
                        wire.start_offset
                    )
                )

                bidir = dir == PortDirection.INOUT
                port_infos.append(
                    DesignPortInfo(
                        dir=PortDirection.IN if bidir else dir,
                        name=wire.name,
                        fullname=fullname,
                        realname=realname,
                        offset=wire.start_offset + index,
                        index=index,
                        width=wire.width,
                        bidir=bidir
                    )
                )

                # The output side of an inout port
                if bidir:
                    port_infos.append(
                        port_infos[-1]._replace(dir=PortDirection.OUT)
                    )

        if port_infos:
            self.trace_and_create_port(module, port_infos)
        else:
            self.status = False
            self.post_msg(2, "Error: Fail to detect any port")

        return self.status

    def get_primitive_parameters(self, cell, primitive):
        """
        Copies the cell parameters and derives the data width
        """
        for param, value in cell.parameters.items():
            primitive.parameters[param] = value

        db = primitive.db
        if "MUST_HAVE_PARAMS" in db.properties:
            for param in db.properties["MUST_HAVE_PARAMS"].split(";"):
                if param not in primitive.parameters:
                    self.error(
                        4, "{} {} does not have parameter {}".format(
                            db.name, primitive.name, param
                        ), primitive
                    )

        if "DEFINE_DATA_WIDTH_FROM_PARAMS" in db.properties:
            param = db.properties["DEFINE_DATA_WIDTH_FROM_PARAMS"]
            value = get_param_string(primitive.parameters.get(param, ""))
            if value.isdigit() and int(value) > 0:
                primitive.data_width = int(value)

                if primitive.is_port_primitive or primitive.grandparent is None:
                    raise self.Exception(
                        "Data width of {} {} can only be derived inside a chain"
                        .format(db.name, primitive.name)
                    )
                primitive.grandparent.chain_data_width = primitive.data_width
            elif param in primitive.parameters:
                self.error(
                    4, "{} {} parameter {} has invalid value {}".format(
                        db.name, primitive.name, param,
                        primitive.parameters[param]
                    ), primitive
                )

        for param, value in primitive.parameters.items():
            self.post_msg(4, "Parameter {}: {}".format(param, value))
        self.post_msg(4, "Data Width: {}".format(primitive.data_width))

    def get_port_cell_connections(self, module, cell, db):
        """
        Splits connections of a port/standalone cell into primary ones (the
        ports on the side of the design pin) and secondary ones. Returns
        (status, primary, secondary), status is True when every checking
        port is connected.
        """
        assert db.is_port() or db.is_standalone()
        assert cell.type == db.name

        checking_ports = db.get_checking_ports()
        assert checking_ports or db.is_standalone()

        self.post_msg(
            2, "Get important connection of cell {} {}".format(
                cell.type, cell.name
            )
        )

        primary = {}
        secondary = {}
        for port in sorted(cell.connections):
            is_input = port in db.inputs
            is_output = not is_input and port in db.outputs
            if not is_input and not is_output:
                continue

            connections = secondary
            if (db.is_in_dir() and is_input) or \
               (db.is_out_dir() and is_output):
                connections = primary

            assert port not in connections, port
            connections[port] = module.sigspec_str(cell.connections[port])

        if len(checking_ports) == len(primary):
            return True, primary, secondary

        for port in checking_ports:
            if port not in primary:
                self.post_msg(
                    3, "Warning: Cell {} does not have all checking port "
                    "connected (Missing {})".format(cell.name, port)
                )

        return False, primary, secondary

    def is_connected_cell(self, module, cell, db, connection):
        """
        Checks if the cell is the one connected to the given net. Returns
        the cell connections when it is, an empty dict otherwise.
        """
        assert cell.type == db.name
        assert len(db.inputs) + len(db.outputs), db.name

        input_connections = 0
        output_connections = 0
        connections = {}
        for port in sorted(cell.connections):
            is_input = port in db.inputs
            is_output = not is_input and port in db.outputs
            if not is_input and not is_output:
                continue

            connections[port] = module.sigspec_str(cell.connections[port])
            if is_input:
                input_connections += 1
            else:
                output_connections += 1

        inputs_ok = len(db.inputs) == input_connections or \
            (db.is_any_inputs() and input_connections > 0) or \
            db.is_optional_input()
        outputs_ok = len(db.outputs) == output_connections or \
            (db.is_any_outputs() and output_connections > 0) or \
            db.is_optional_output()

        if not inputs_ok or not outputs_ok:
            return {}

        for port in db.get_checking_ports():
            if connections.get(port, None) == connection:
                return connections

        return {}

    def trace_and_create_port(self, module, port_infos):
        """
        Creates a root for every port/standalone primitive connected to the
        design ports
        """
        port_trackers = set()

        self.post_msg(1, "Get Port/Standalone Primitives")
        for cell in module.cells.values():
            db = self.is_supported_primitive(
                cell.type, PrimitiveRequirement.IS_PORT
            )
            if db is None:
                db = self.is_supported_primitive(
                    cell.type, PrimitiveRequirement.IS_STANDALONE
                )
            if db is None:
                continue

            status, primary, secondary = self.get_port_cell_connections(
                module, cell, db
            )
            if not status:
                self.post_msg(3, "Error: Ignore cell {}".format(cell.name))
                self.netlist_status = False
                continue

            # A port primitive has to be connected to design port(s)
            dir = PortDirection.IN if db.is_in_dir() else PortDirection.OUT
            connected_ports = []
            for port, net in primary.items():
                if not self.get_connected_port(module, port, net, dir,
                                               port_infos, port_trackers,
                                               connected_ports):
                    status = False
                    self.netlist_status = False
                    break

            if not status:
                self.post_msg(4, "Error: Ignore cell {}".format(cell.name))
                continue

            connections = dict(primary)
            connections.update(secondary)
            bidir = any(p.bidir for p in connected_ports)

            port = PortPrimitive(
                db, cell.name, connections, connected_ports, bidir,
                self.context
            )
            self.ports.append(port)
            self.get_primitive_parameters(cell, port)

    def get_connected_port(
        self,
        module,
        cell_port_name,
        connection,
        dir,
        port_infos,
        port_trackers,
        connected_ports,
        visited=None
    ):
        """
        Resolves a net to a design port, directly or by following the module
        aliasing pairs. Inputs follow aliases towards the left-hand side.
        """
        for index, port_info in enumerate(port_infos):
            if connection != port_info.fullname or dir != port_info.dir:
                continue

            self.post_msg(
                3, "Cell port {} is connected to {} port {}".format(
                    cell_port_name, port_info.dir.label(), port_info.fullname
                )
            )
            connected_ports.append(port_info)
            if index in port_trackers:
                self.post_msg(
                    4, "Warning: {} port {} had been connected more than one"
                    .format(port_info.dir.label(1), port_info.fullname)
                )
            port_trackers.add(index)
            return True

        is_top = visited is None
        if is_top:
            visited = set()
        visited.add(connection)

        status = False
        for lhs, rhs in self.aliases:
            src, dest = (lhs, rhs) if dir == PortDirection.IN else (rhs, lhs)
            if src != connection or dest in visited:
                continue

            status = self.get_connected_port(
                module, cell_port_name, dest, dir, port_infos, port_trackers,
                connected_ports, visited
            )
            if status:
                break

        if not status and is_top:
            self.post_msg(
                3, "Error: There is no port connection to cell port {}".format(
                    cell_port_name
                )
            )
            self.netlist_status = False

        return status

    # =========================================================================

    def trace_next_primitive(self, module, src_primitive_name,
                             dest_primitive_name):
        """
        Attaches cells of the destination type to already known primitives
        of the source type
        """
        self.post_msg(
            1, "Trace {} --> {}".format(src_primitive_name, dest_primitive_name)
        )

        src_db = self.is_supported_primitive(src_primitive_name)
        assert src_db is not None, src_primitive_name

        if src_db.is_port() or src_db.is_standalone():
            src_primitives = list(self.ports)
        else:
            src_primitives = list(self.child_primitives)

        for primitive in src_primitives:
            if primitive.db.name != src_primitive_name:
                continue
            if primitive.db.outtrace_connection not in primitive.connections:
                continue

            for cell in module.cells.values():
                if cell.type != dest_primitive_name:
                    continue
                if cell.name in primitive.child:
                    continue

                trace_connection = primitive.get_outtrace_connection()
                msg_count = len(self.msgs)
                self.post_msg(
                    2, "Try {} {} out connection: {} -> {}".format(
                        primitive.db.name, primitive.name, trace_connection,
                        cell.name
                    )
                )

                if self._trace_next_primitive(module, primitive, cell,
                                              trace_connection, set()):
                    for wire in primitive.child_connections.get(cell.name, []):
                        self.post_msg(4, "Additional Connection: {}".format(wire))

                # Failed attempts are only kept in debug mode
                elif not self.context.debug:
                    del self.msgs[msg_count:]

    def _trace_next_primitive(self, module, parent, cell, connection, visited):
        assert cell.name not in parent.child, cell.name

        db = self.is_supported_primitive(
            cell.type, PrimitiveRequirement.NOT_PORT
        )
        assert db is not None, cell.type

        connections = self.is_connected_cell(module, cell, db, connection)
        if connections:
            # A cell has a single parent, the first one to reach it
            if cell.name in self.traced_cells:
                owner = self.traced_cells[cell.name]
                self.error(
                    3, "{} {} is already connected to {} {}, ignore the "
                    "connection from {} {}".format(
                        db.name, cell.name, owner.db.name, owner.name,
                        parent.db.name, parent.name
                    ), parent
                )
                return True

            self.post_msg(3, "Connected {}".format(cell.name))
            primitive = Primitive(
                db, cell.name, parent, connections, False, parent.bidir
            )
            self.child_primitives.append(primitive)
            self.traced_cells[cell.name] = parent
            parent.child[cell.name] = primitive
            self.get_primitive_parameters(cell, primitive)
            return True

        # Inputs flow from the right-hand side of an alias to the left one
        visited.add(connection)
        for lhs, rhs in self.aliases:
            src, dest = (rhs, lhs) if db.is_in_dir() else (lhs, rhs)
            if src != connection or dest in visited:
                continue

            if self._trace_next_primitive(module, parent, cell, dest,
                                          visited):
                if cell.name in parent.child:
                    parent.child_connections.setdefault(cell.name,
                                                        []).insert(0, dest)
                return True

        return False

    def trace_fabric_clkbuf(self, module):
        """
        Promotes clock buffers sitting between two fabric nets to roots
        """
        self.post_msg(1, "Trace fabric clock buffer")

        for cell in module.cells.values():
            db = self.is_supported_primitive(
                cell.type, PrimitiveRequirement.IS_FABRIC_CLKBUF
            )
            if db is None:
                continue

            assert len(db.inputs) == 1, db.name
            assert len(db.outputs) == 1, db.name

            input_net = ""
            output_net = ""
            connections = {}
            for port, sig in cell.connections.items():
                if port not in (db.inputs[0], db.outputs[0]):
                    continue
                signals = module.get_signals(sig)
                if len(signals) != 1 or not is_real_net(signals[0]):
                    continue

                connections[port] = signals[0]
                if port == db.inputs[0]:
                    input_net = signals[0]
                else:
                    output_net = signals[0]

            if not input_net or not output_net:
                continue

            # Both sides have to be used by non-primitive cells
            input_connected_to_fabric = False
            output_connected_to_fabric = False
            for fabric_cell in module.cells.values():
                if self.is_supported_primitive(fabric_cell.type) is not None:
                    continue

                for sig in fabric_cell.connections.values():
                    signals = module.get_signals(sig)
                    if len(signals) != 1:
                        continue
                    if signals[0] == input_net:
                        input_connected_to_fabric = True
                    elif signals[0] == output_net:
                        output_connected_to_fabric = True

                if input_connected_to_fabric and output_connected_to_fabric:
                    break

            if not input_connected_to_fabric or not output_connected_to_fabric:
                continue

            self.post_msg(2, "Detect fabric clock buffer")
            for port, net in sorted(connections.items()):
                self.post_msg(3, "{} : {}".format(port, net))

            port = PortPrimitive(
                db, cell.name, connections, [], False, self.context
            )
            self.ports.append(port)
            self.get_primitive_parameters(cell, port)

    def trace_gearbox_fast_clock(self):
        """
        Finds the gearbox clock source for every primitive with a fast clock
        port. A primitive with lower fast clock priority is skipped when
        another one in its chain needs a fast clock too.
        """
        self.post_msg(1, "Trace gearbox fast clock source")

        for primitive in self.child_primitives:
            if not primitive.db.fast_clock:
                continue

            high_priority = None
            if primitive.db.is_lower_fast_clock_priority():
                for other in self.child_primitives:
                    if other.name != primitive.name and \
                       other.grandparent is primitive.grandparent and \
                       other.db.fast_clock and \
                       not other.db.is_lower_fast_clock_priority():
                        high_priority = other
                        break

            assert not primitive.db.is_clock(), primitive
            if primitive.db.fast_clock not in primitive.connections:
                self.error(
                    2, "{} {} fast clock port {} is not connected".format(
                        primitive.db.name, primitive.name,
                        primitive.db.fast_clock
                    ), primitive
                )
                continue

            clock = primitive.connections[primitive.db.fast_clock]
            self.post_msg(
                2, "{} {} port {}: {}".format(
                    primitive.db.name, primitive.name, primitive.db.fast_clock,
                    clock
                )
            )

            if high_priority is not None:
                self.post_msg(
                    3, "Ignore this because {} {} in chain has higher "
                    "priority fast clock port".format(
                        high_priority.db.name, high_priority.name
                    )
                )
                continue

            found = False
            for clock_primitive in self.child_primitives:
                if not clock_primitive.db.is_gearbox_clock():
                    continue

                for port in clock_primitive.db.outputs:
                    if clock_primitive.connections.get(port, None) != clock:
                        continue

                    self.post_msg(
                        3, "Connected to {} {} port {}".format(
                            clock_primitive.db.name, clock_primitive.name, port
                        )
                    )
                    clock_primitive.gearbox_clocks.setdefault(port, []).append(
                        primitive
                    )
                    found = True
                    break

                if found:
                    break

            if not found:
                self.error(
                    3, "{} {} fast clock port {} (net: {}) is not routable".
                    format(
                        primitive.db.name, primitive.name,
                        primitive.db.fast_clock, clock
                    ), primitive
                )

    # =========================================================================

    def gen_instances(self):
        """
        Flattens every chain into the instance list
        """
        assert self.status
        assert not self.instances

        for port in self.ports:
            self._gen_instances(
                port.linked_object(), port.linked_objects(), port, ""
            )

    def _gen_instances(self, linked_object, linked_objects, primitive,
                       pre_primitive):
        # Output chains may be generated from the fabric side on request
        inward = self.context.generation_order == "inward" or \
            primitive.db.is_in_dir()

        if inward:
            if primitive.is_port_primitive:
                self.gen_instance(linked_objects, primitive, pre_primitive)
            for name, child in primitive.child.items():
                self.gen_wire(linked_object, linked_objects, primitive, name)
                self.gen_instance(linked_objects, child, primitive.db.name)
                self._gen_instances(
                    linked_object, linked_objects, child, primitive.db.name
                )

        else:
            for name, child in primitive.child.items():
                self._gen_instances(
                    linked_object, linked_objects, child, primitive.db.name
                )
                self.gen_instance(linked_objects, child, primitive.db.name)
                self.gen_wire(linked_object, linked_objects, primitive, name)
            if primitive.is_port_primitive:
                self.gen_instance(linked_objects, primitive, pre_primitive)

    def gen_instance(self, linked_objects, primitive, pre_primitive):
        instance = Instance(
            primitive.db.name,
            primitive.name,
            linked_objects,
            primitive,
            primitive.db.is_in_dir(),
            pre_primitive=pre_primitive,
            post_primitives=[c.db.name for c in primitive.child.values()],
            gearbox_clocks=primitive.gearbox_clocks
        )
        instance.add_connections(primitive.connections)
        instance.add_parameters(primitive.parameters)
        if primitive.bidir:
            instance.flags.append("INOUT")

        self.instances.append(instance)
        primitive.set_instance(instance)

    def gen_wire(self, linked_object, linked_objects, primitive, child):
        """
        Emits the pass-through wires between a primitive and one of its
        children
        """
        assert child in primitive.child, child

        trace_connection = primitive.get_outtrace_connection()
        for index, wire in enumerate(primitive.child_connections.get(child,
                                                                     [])):
            instance = Instance(
                "WIRE",
                "AUTO_{}_{}_#{}".format(child, linked_object, index),
                linked_objects,
                None,
                primitive.db.is_in_dir(),
            )
            instance.add_connections({"I": trace_connection, "O": wire})
            self.instances.append(instance)
            trace_connection = wire

    # =========================================================================

    def determine_fabric_clock(self, module):
        """
        Decides which clock outputs need a fabric clock slot
        """
        assert self.status

        self.post_msg(1, "Trace Core/Fabric Clock")
        for instance in self.instances:
            if instance.is_wire():
                continue

            primitive = instance.primitive
            db = primitive.db

            is_clock_primitive = db.is_clock() or db.is_fabric_clkbuf()
            if is_clock_primitive:
                outputs = db.outputs
            elif "CLK_OUT_PORT" in db.properties:
                outputs = [db.properties["CLK_OUT_PORT"]]
            else:
                continue

            if not db.is_in_dir() or not outputs:
                raise self.Exception(
                    "Clock source {} {} must be an input direction primitive "
                    "with outputs".format(db.name, primitive.name)
                )

            for i, out in enumerate(outputs):
                if out not in primitive.connections:
                    continue

                iport = ""
                inet = ""
                if is_clock_primitive and db.inputs:
                    assert len(db.inputs) == 1, db.name
                    iport = db.inputs[0]
                    inet = instance.connections.get(iport, "")

                oport = out
                onet = instance.connections[oport]

                core_clocks, used_by_fabric_logic, used_by_non_core_clock = \
                    self.need_to_route_to_fabric(
                        module, db.name, primitive.name, out,
                        primitive.connections[out], is_clock_primitive
                    )

                if not core_clocks and not used_by_fabric_logic:
                    continue

                if db.is_not_core(out):
                    self.error(3, "Cannot be used as core clock", primitive)
                    continue

                if len(self.fabric_clocks) >= \
                   self.context.max_fabric_clock_slot:
                    self.error(
                        3, "Run out of fabric clock slot (max {})".format(
                            self.context.max_fabric_clock_slot
                        ), primitive
                    )
                    continue

                clock = str(len(self.fabric_clocks))
                self.post_msg(3, "Use slot {}".format(clock))

                name = "ROUTE_TO_FABRIC_CLK"
                if len(db.outputs) > 1:
                    name = "OUT{}_ROUTE_TO_FABRIC_CLK".format(i)
                instance.parameters[name] = clock
                for obj in instance.linked_objects:
                    instance.properties[obj][name] = clock

                if db.is_fabric_clkbuf():
                    assert primitive.is_port_primitive, primitive
                    prefix = "{}#".format(FABRIC_CLKBUF_NAME)
                    from_clock = primitive.standalone_name
                    assert from_clock.startswith(prefix), from_clock
                    from_clock = from_clock[len(prefix):]

                    instance.parameters["ROUTE_FROM_FABRIC_CLK"] = from_clock
                    for obj in instance.linked_objects:
                        instance.properties[obj]["ROUTE_FROM_FABRIC_CLK"] = \
                            from_clock

                self.fabric_clocks.append(
                    FabricClock(
                        instance.linked_object(), instance.module,
                        instance.name, iport, oport, inet, onet,
                        db.is_fabric_clkbuf(), core_clocks,
                        used_by_fabric_logic
                    )
                )

                if db.is_port_clock() and not used_by_non_core_clock and \
                   not instance.gearbox_clocks:
                    instance.flags.append("PIN_CLOCK_CORE_ONLY")

        self.post_msg(1, "Double check Core/Fabric Clock")
        for instance in self.instances:
            if instance.is_wire() or not instance.primitive.db.core_clock:
                continue

            self.post_msg(
                2, "{} {} port {}".format(
                    instance.module, instance.name,
                    instance.primitive.db.core_clock
                )
            )
            found = [f for f in self.fabric_clocks if instance.name in f.gearboxes]
            assert len(found) <= 1, instance.name
            if found:
                self.post_msg(3, "Good. Found clocking")
            else:
                self.post_msg(3, "Warning: Bad. No clocking")

    def need_to_route_to_fabric(
        self, module, module_type, module_name, port_name, net_name,
        is_clock_primitive
    ):
        """
        Checks every user of a clock net. Returns a tuple of:
         - names of the gearboxes using the net as their core clock,
         - whether fabric logic uses the net,
         - whether a primitive uses it for anything but its core clock.
        """
        core_clocks = []
        used_by_fabric_logic = False
        used_by_non_core_clock = False

        self.post_msg(
            2, "Module {} {}: clock port {}, net {}".format(
                module_type, module_name, port_name, net_name
            )
        )

        for cell in module.cells.values():
            if cell.name == module_name and is_clock_primitive:
                continue

            for port, sig in cell.connections.items():
                if module.sigspec_str(sig) != net_name:
                    continue

                self.post_msg(
                    3, "Connected to cell {} {}".format(cell.type, cell.name)
                )

                db = self.is_supported_primitive(cell.type)
                if db is not None:
                    self.post_msg(4, "Which is a primitive")
                    if db.is_core_clock_of(port, module_type):
                        self.post_msg(
                            4, "This is gearbox core_clk. Send to fabric"
                        )
                        core_clocks.append(cell.name)
                    else:
                        self.post_msg(
                            4, "Does not meet core_clk checking criteria. "
                            "Not sending to fabric"
                        )
                        used_by_non_core_clock = True

                elif not used_by_fabric_logic:
                    self.post_msg(
                        4, "Which is not a IO primitive. Send to fabric"
                    )
                    used_by_fabric_logic = True

        return core_clocks, used_by_fabric_logic, used_by_non_core_clock

    # =========================================================================

    def get_pin_info(self, name, dir):
        assert dir in (PortDirection.IN, PortDirection.OUT), dir

        for pin in self.pin_infos:
            if pin.name == name and pin.is_input == (dir == PortDirection.IN):
                return pin
        return None

    def summarize(self):
        """
        Builds the pin records and a table of all traced chains
        """
        assert self.status

        self.post_msg(1, "Summary")

        self.max_in_object_name = 0
        self.max_out_object_name = 0
        self.max_object_name = 0
        self.max_trace = 0

        for port in self.ports:
            size = len(port.linked_object())
            if port.db.is_in_dir():
                self.max_in_object_name = max(self.max_in_object_name, size)
            else:
                self.max_out_object_name = max(self.max_out_object_name, size)
            for obj in port.linked_objects():
                self.max_object_name = max(self.max_object_name, len(obj))

        for port in self.ports:
            self._measure_trace(port, [port.db.name], port.db.is_in_dir())
        self.max_trace += 32

        dashes = "-" * (
            self.max_in_object_name + self.max_trace +
            self.max_out_object_name + 8
        )
        stars = "*" * (self.max_trace + 4)
        border = "    | {}{}{} |".format(
            " " * (self.max_in_object_name + 1), stars,
            " " * (self.max_out_object_name + 1)
        )

        self.post_msg(2, "    |{}|".format(dashes))
        self.post_msg(2, border)

        for port in self.ports:
            for obj in port.linked_objects():
                if self.get_pin_info(obj, port.dir) is not None:
                    raise self.Exception(
                        "{} pin {} is served by more than one primitive".format(
                            port.dir.label(1), obj
                        )
                    )
                self.pin_infos.append(PinPort(obj, port))

            self._summarize(
                port, port.linked_object(), port.linked_objects(),
                [port.db.name], [port.db.name], port.db.is_in_dir()
            )

        self.post_msg(2, border)
        self.post_msg(2, "    |{}|".format(dashes))

        self.summarized = True

    def _measure_trace(self, primitive, traces, is_in_dir):
        if not primitive.child:
            trace = join_trace(traces, True)
            self.max_trace = max(self.max_trace, len(trace))
            return

        for child in primitive.child.values():
            assert child.db.is_in_dir() == is_in_dir, child
            self._measure_trace(child, traces + [child.db.name], is_in_dir)

    def _summarize(
        self, primitive, object_name, objects, traces, full_traces, is_in_dir
    ):
        for obj in objects:
            self.update_pin_info(obj, primitive)

        if primitive.child:
            for i, child in enumerate(primitive.child.values()):
                assert child.db.is_in_dir() == is_in_dir, child

                # Siblings after the first one only show their own branch
                if i == 0:
                    temp = list(traces)
                else:
                    size = sum(len(t) for t in traces) + \
                        (len(traces) - 1) * len(" -> ")
                    temp = [" " * size]

                self._summarize(
                    child, object_name, objects, temp + [child.db.name],
                    full_traces + [child.db.name], is_in_dir
                )
            return

        dir = PortDirection.IN if is_in_dir else PortDirection.OUT
        for obj in objects:
            pin = self.get_pin_info(obj, dir)
            assert pin is not None, obj
            pin.traces.append(join_trace(traces, is_in_dir))
            pin.full_traces.append(join_trace(full_traces, is_in_dir))

        trace = join_trace(traces, is_in_dir)
        if is_in_dir:
            is_child = traces[0].strip() == ""
            self.post_msg(
                2, "IN  | {} * {} * {} |".format(
                    ("" if is_child else object_name).rjust(
                        self.max_in_object_name
                    ), trace.ljust(self.max_trace),
                    "".rjust(self.max_out_object_name)
                )
            )
        else:
            self.post_msg(
                2, "OUT | {} * {} * {} |".format(
                    "".rjust(self.max_in_object_name),
                    trace.rjust(self.max_trace),
                    object_name.ljust(self.max_out_object_name)
                )
            )

    def update_pin_info(self, pin_name, primitive):
        """
        Sets the pin mode and flags the secondary pin of a differential pair
        """
        db = primitive.db
        pin = self.get_pin_info(
            pin_name, PortDirection.IN if db.is_in_dir() else PortDirection.OUT
        )
        assert pin is not None, pin_name

        pin_mode = db.properties.get("PIN_MODE", "")
        if pin_mode:
            if pin.mode:
                self.error(
                    3, "Pin {} mode had been set to {} (ignore {} {})".format(
                        pin_name, pin.mode, db.name, primitive.name
                    ), primitive
                )
            elif pin_mode == "DDR":
                pin.mode = "DDR"
            else:
                assert pin_mode == "RATE", pin_mode
                width = get_param_string(primitive.parameters.get("WIDTH", ""))
                if width.isdigit():
                    pin.mode = "RATE_{}".format(int(width))
                elif "DATA_RATE" in primitive.parameters:
                    data_rate = get_param_string(
                        primitive.parameters["DATA_RATE"]
                    )
                    if data_rate in ("SDR", "DDR"):
                        pin.mode = data_rate
                    else:
                        self.error(
                            3, "Pin {} {} {} has invalid DATA_RATE {}".format(
                                pin_name, db.name, primitive.name, data_rate
                            ), primitive
                        )
                if not pin.mode:
                    pin.mode = "SDR"

        secondary_port = db.properties.get("SECONDARY_PIN_PORT", "")
        if secondary_port:
            assert secondary_port in primitive.connections, primitive
            if primitive.connections[secondary_port] == pin_name:
                pin.skip_reason = SECONDARY_PIN_REASON

    def finalize(self, module):
        """
        Checks that no supported cell got lost during extraction
        """
        cells = [
            c for c in module.cells.values()
            if self.is_supported_primitive(c.type) is not None
        ]
        primitive_names = set(p.name for p in self.ports)
        primitive_names |= set(p.name for p in self.child_primitives)
        instance_names = set(
            i.name for i in self.instances if i.module != "WIRE"
        )

        design_count = len(cells)
        primitive_count = len(self.ports) + len(self.child_primitives)
        instance_count = len([i for i in self.instances if i.module != "WIRE"])

        if design_count == primitive_count and \
           design_count == instance_count:
            self.post_msg(1, "Final checking is good")
            return

        self.post_msg(
            1, "Error: Final checking failed. Design count: {}, Primitive "
            "count: {}, Instance count: {}".format(
                design_count, primitive_count, instance_count
            )
        )
        self.netlist_status = False

        if design_count != primitive_count:
            for cell in cells:
                if cell.name not in primitive_names:
                    self.post_msg(
                        2, "Error: Missing {} ({}) in primitive list".format(
                            cell.type, cell.name
                        )
                    )

        if design_count != instance_count:
            for cell in cells:
                if cell.name not in instance_names:
                    self.post_msg(
                        2, "Error: Missing {} ({}) in instance list".format(
                            cell.type, cell.name
                        )
                    )

    # =========================================================================

    def assign_location(self, port, location, properties=None):
        """
        Assigns a location (and properties) to every instance linked to the
        design port
        """
        if not self.summarized:
            raise self.Exception(
                "Locations can only be assigned after a successful extraction"
            )

        self.post_msg(
            1, "Assign location {} (and properties) to Port {}".format(
                location, port
            )
        )

        for instance in self.instances:
            if port not in instance.linked_objects:
                continue

            pin = self.get_pin_info(
                port,
                PortDirection.IN if instance.is_in_dir else PortDirection.OUT
            )
            assert pin is not None, port
            pin.location = location

            instance.locations[port] = location
            if instance.primitive is not None and \
               instance.primitive.is_port_primitive:
                instance.properties[port].update(properties or {})

    def finalize_locations(self):
        for instance in self.instances:
            instance.finalize_location()

    def get_primitive_locations_by_name(self, name, unique_location=True):
        """
        Returns the location(s) of the instance with the given name
        """
        for instance in self.instances:
            if instance.name != name:
                continue

            if unique_location:
                instance.finalize_location()
                return [instance.parsed_location.location]
            return [loc for loc in instance.locations.values() if loc]

        return []

    def get_bad_locations(self):
        """
        Returns (instance, reason) for every located instance with a location
        that failed to decode
        """
        return [
            (i, i.parsed_location.failure_reason) for i in self.instances
            if i.location_status() == LocationStatus.BAD
        ]
