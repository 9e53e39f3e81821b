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
Physical constraint writers.

Produces the SDC-like constraint file with four sections (fabric clocks, pin
mode and location, internal control signals and gearbox core clocks) and the
XML file which binds fabric clock slots to nets.
"""
import io

from collections import namedtuple
from enum import Enum

import lxml.etree as ET

from primitives_extractor.location import LocationStatus, parse_location, \
    remap_half_first, pair_location, pair_key
from primitives_extractor.model import CoreClockInfo
from primitives_extractor.primitives import CONTROL_SIGNALS
from primitives_extractor import wrapped as wrapped_netlist

# =============================================================================

# A column aligned line. Up to seven columns, trailing ones may be empty.
SdcAssignment = namedtuple(
    "SdcAssignment", "str1 str2 str3 str4 str5 str6 str7"
)


def make_assignment(*strings):
    assert len(strings) >= 3 and len(strings) <= 7, strings
    strings = list(strings) + [""] * (7 - len(strings))
    return SdcAssignment(*strings)


class SdcEntry:
    """
    A group of comment lines followed by assignments
    """

    def __init__(self):
        self.comments = []
        self.assignments = []


class TrackedControl(Enum):
    GOOD = 0
    MATCH = 1
    ACCEPTABLE_CONFLICT = 2
    CONFLICT = 3
    BAD_LOCATION = 4
    BAD_WRAPPED_NET = 5


def write_section_header(fp, title):
    fp.write("#############\n")
    fp.write("#\n")
    fp.write("# {}\n".format(title))
    fp.write("#\n")
    fp.write("#############\n")


def write_sdc_entries(fp, entries):
    """
    Writes entries with their assignments aligned in columns
    """
    widths = [0] * 6
    for entry in entries:
        for assignment in entry.assignments:
            for i in range(6):
                widths[i] = max(widths[i], len(assignment[i]))

    def column(string, i):
        return string.ljust(widths[i] + 1)

    for entry in entries:
        for comment in entry.comments:
            fp.write(comment + "\n")

        for a in entry.assignments:
            fp.write(column(a.str1, 0))
            fp.write(column(a.str2, 1))
            if a.str4:
                fp.write(column(a.str3, 2))
                if a.str5:
                    assert a.str6 and a.str7, a
                    fp.write(column(a.str4, 3))
                    fp.write(column(a.str5, 4))
                    fp.write(column(a.str6, 5))
                    fp.write(a.str7)
                else:
                    assert not a.str6 and not a.str7, a
                    fp.write(a.str4)
            else:
                assert not a.str5 and not a.str6 and not a.str7, a
                fp.write(a.str3)
            fp.write("\n")
        fp.write("\n")


# =============================================================================


class SdcWriter:
    """
    Generates constraints of an extraction run. Locations are expected to be
    assigned beforehand.
    """

    def __init__(self, extractor, wrapped):
        self.extractor = extractor
        self.wrapped = wrapped

        # "<I|O>:<location>" -> pin mode, the first pin at a location wins
        self.location_mode = {}

    def post_msg(self, offset, msg):
        self.extractor.post_msg(offset, msg)

    def post_sdc_comment(self, entry, offset, type, comment):
        assert type in (wrapped_netlist.SKIP, wrapped_netlist.ERROR), type
        if type == wrapped_netlist.ERROR:
            self.extractor.netlist_status = False
        self.post_msg(offset, "{} reason: {}".format(type, comment))
        entry.comments.append("# {} reason: {}".format(type, comment))

    # .........................................................................

    def generate(self):
        """
        Returns the constraint file text and the XML pin constraints root
        """
        context = self.extractor.context

        if context.instance_cross_check:
            self.post_msg(1, "Cross-check instances vs wrapped-instances")
            for instance in self.extractor.instances:
                if instance.is_wire():
                    continue
                if self.wrapped.find_instance(instance.name) is None:
                    self.extractor.error(
                        2, "Unable to find wrapped-instance {}".format(
                            instance.name
                        ), instance.primitive
                    )

        self.post_msg(1, "Finalize instance location")
        self.extractor.finalize_locations()

        self.post_msg(1, "Generate SDC")
        sdc = io.StringIO()
        xml = ET.Element("pin_constraints")

        self.write_fabric_clock(sdc, xml)
        self.write_data_mode_and_location(sdc)
        self.write_control_signal(sdc)
        self.write_gearbox_core_clock(sdc)

        return sdc.getvalue(), xml

    def write(self, sdc_file, xml_file):
        sdc, xml = self.generate()

        with open(sdc_file, "w") as fp:
            fp.write(sdc)

        with open(xml_file, "w") as fp:
            xml_str = ET.tostring(xml, pretty_print=True).decode("utf-8")
            fp.write(xml_str)

    # .........................................................................

    def write_fabric_clock(self, sdc, xml):
        self.post_msg(2, "Determine fabric clock")
        write_section_header(sdc, "Fabric clock assignment")

        def set_io(slot, net):
            ET.SubElement(
                xml, "set_io", {
                    "pin": "clk[{}]".format(slot),
                    "net": net
                }
            )

        fabric_clocks = self.extractor.fabric_clocks
        max_slot = self.extractor.context.max_fabric_clock_slot
        assert len(fabric_clocks) <= max_slot

        j = 0
        for i, clk in enumerate(fabric_clocks):
            original_setting = "# set_clock_pin -device_clock clk[{}] " \
                "-design_clock {} (Physical port name, clock module: {} {})\n" \
                .format(i, clk.linked_object, clk.module, clk.name)

            if not clk.core_logic:
                assert clk.gearboxes, clk
                sdc.write(
                    "# This clock is only used by gearbox, does not need to "
                    "route to fabric slot #{}\n".format(i)
                )
                sdc.write(original_setting + "\n")
                set_io(i, "OPEN")
                continue

            sdc.write("# This clock need to route to fabric slot #{}\n".format(i))
            if clk.is_fabric_clkbuf:
                sdc.write("# This is fabric clock buffer\n")

            instance = self.wrapped.find_instance(clk.name)
            wrapped_net = ""
            if instance is not None:
                wrapped_net = self.wrapped.get_output_wrapped_net(
                    instance, clk.oport
                )
            if not wrapped_net:
                sdc.write("# Error reason: Failed to find the mapped name\n")
                self.extractor.netlist_status = False

            # Always print the port name
            sdc.write(original_setting)
            if wrapped_net:
                sdc.write(
                    "# set_clock_pin -device_clock clk[{}] -design_clock {} "
                    "(Original clock primitive out-net to fabric)\n".format(
                        i, clk.onet
                    )
                )
            net = wrapped_net if wrapped_net else clk.onet
            sdc.write(
                "set_clock_pin   -device_clock clk[{}] -design_clock {}\n".
                format(i, net)
            )
            set_io(i, net)

            if clk.is_fabric_clkbuf:
                sdc.write("\n# For fabric clock buffer output\n")
                wrapped_net = ""
                if instance is not None:
                    wrapped_net = self.wrapped.get_input_wrapped_net(
                        instance, clk.iport
                    )
                if wrapped_net:
                    sdc.write(
                        "# set_clock_out -device_clock clk[{}] -design_clock "
                        "{}\n".format(j, clk.inet)
                    )
                else:
                    sdc.write("# Error reason: Failed to find the mapped name\n")
                    self.extractor.netlist_status = False
                sdc.write(
                    "set_clock_out   -device_clock clk[{}] -design_clock {}\n"
                    .format(j, wrapped_net if wrapped_net else clk.inet)
                )
                j += 1

            sdc.write("\n")

        if not fabric_clocks:
            sdc.write("\n")

        for i in range(len(fabric_clocks), max_slot):
            set_io(i, "OPEN")

    # .........................................................................

    def get_fabric_data(self, obj, is_input):
        """
        Maps the data port of the last data primitive serving the object to
        fabric ports. Returns (nets, found, reason, not_an_error).
        """
        self.post_msg(4, "Data signal from object {}".format(obj))

        # The last data carrying primitive of the chain
        instance = None
        for inst in self.extractor.instances:
            if inst.is_wire() or inst.is_in_dir != is_input:
                continue
            if obj not in inst.linked_objects:
                continue
            if inst.primitive.db.is_port_clock():
                continue
            instance = inst

        nets = []
        found = []
        reason = ""
        not_an_error = False

        if instance is None:
            reason = "Unable to find instance for object {}".format(obj)

        elif not instance.primitive.db.data_signal:
            reason = "Object {} is primitive {} but data signal is not " \
                "defined".format(obj, instance.module)
            not_an_error = True

        else:
            db = instance.primitive.db
            linked_object = instance.linked_object()
            data_port = db.data_signal

            nets, type, reason = self.wrapped.get_instance_net_by_port(
                instance.module, linked_object, data_port
            )
            not_an_error = type == wrapped_netlist.SKIP

            if not reason:
                if db.is_in_dir():
                    nets = self.wrapped.follow_next_wire(nets, "I", "O")
                else:
                    nets = self.wrapped.follow_next_wire(nets, "O", "I")
                found = self.wrapped.check_fabric_port(nets)

                for net, is_found in zip(nets, found):
                    self.post_msg(
                        5, "Module={} Linked-object={} Port={} Net={} - {}".
                        format(
                            instance.module, linked_object, data_port, net,
                            "Found" if is_found else "Not found"
                        )
                    )

                if len(found) != len(nets) or not any(found):
                    # A pin that only feeds a clock buffer has no data
                    primitive = instance.primitive
                    feeds_clock = primitive.is_port_primitive and any(
                        c.db.is_port_clock() for c in primitive.child.values()
                    )
                    if feeds_clock:
                        reason = "Clock data from object {} port {} does " \
                            "not need to route to fabric".format(
                                obj, data_port
                            )
                        not_an_error = True
                    else:
                        reason = "Fail to map all data signal(s) from " \
                            "object {} port {} to fabric".format(
                                obj, data_port
                            )

        if reason:
            if not_an_error:
                self.post_msg(5, "Skip reason: {}".format(reason))
            else:
                self.post_msg(5, "Error reason: {}".format(reason))
                self.extractor.netlist_status = False

        return nets, found, reason, not_an_error

    def get_pin_mode(self, pin, parsed_location):
        mode = "MODE_BP_DIR"
        if pin.mode == "SDR":
            mode = "MODE_BP_SDR"
        elif pin.mode == "DDR":
            mode = "MODE_BP_DDR"
        elif pin.mode.startswith("RATE_"):
            mode = "MODE_{}".format(pin.mode)

        ab = "A" if parsed_location.index % 2 == 0 else "B"
        return "{}_{}_{}".format(mode, ab, "RX" if pin.is_input else "TX")

    def write_data_mode_and_location(self, sdc):
        self.post_msg(2, "Determine data pin mode and location")
        write_section_header(sdc, "Each pin mode and location assignment")

        entries = []
        for pin in self.extractor.pin_infos:
            if pin.is_standalone or pin.is_fabric_clkbuf:
                continue

            entry = SdcEntry()
            for i, trace in enumerate(pin.traces):
                if i == 0:
                    entry.assignments.append(
                        make_assignment("# Pin", pin.name, ":: " + trace)
                    )
                else:
                    entry.assignments.append(
                        make_assignment("#", "", ":: " + trace)
                    )

            instance = pin.primitive.instance
            if instance is not None and instance.parsed_location is not None \
               and instance.parsed_location.location == pin.location:
                parsed_location = instance.parsed_location
            else:
                parsed_location = parse_location(pin.location)

            self.post_msg(
                3, "Pin object={}, location: {}".format(pin.name, pin.location)
            )

            if parsed_location.status != LocationStatus.GOOD:
                if pin.location:
                    self.post_msg(4, "Pin location is invalid")
                    entry.comments.append("# Pin location is invalid")
                else:
                    self.post_msg(4, "Pin location is not assigned")
                    entry.comments.append("# Pin location is not assigned")
                entries.append(entry)
                continue

            mode = self.get_pin_mode(pin, parsed_location)
            location_key = "{}:{}".format(
                "I" if pin.is_input else "O", pin.location
            )
            if location_key not in self.location_mode:
                self.location_mode[location_key] = mode

            if pin.skip_reason:
                self.post_msg(
                    4, "Skip this because '{}'".format(pin.skip_reason)
                )
                entry.comments.append(
                    "# Skip this because '{}'".format(pin.skip_reason)
                )
                entries.append(entry)
                continue

            nets, found, reason, not_an_error = self.get_fabric_data(
                pin.name, pin.is_input
            )
            if reason:
                if not_an_error:
                    entry.comments.append("# Skip reason: {}".format(reason))
                else:
                    entry.comments.append("# Error reason: {}".format(reason))
                    self.extractor.netlist_status = False
                entries.append(entry)
                continue

            entry.assignments.append(
                make_assignment("# set_mode", mode, pin.location)
            )
            entry.assignments.append(
                make_assignment(
                    "# set_io", pin.name, pin.location, "--> (original)"
                )
            )

            # Data of a B (N) pin goes through the pair's A (P) location
            is_a = parsed_location.index % 2 == 0
            location = pair_location(parsed_location)
            internal_pin = "g2f_rx_in" if pin.is_input else "f2g_tx_out"
            for k, (net, is_found) in enumerate(zip(nets, found),
                                                0 if is_a else 5):
                entry.assignments.append(
                    make_assignment(
                        "set_io" if is_found else "# set_io", net, location,
                        "-mode", mode, "-internal_pin",
                        "{}[{}]_A".format(internal_pin, k)
                    )
                )

            entries.append(entry)

        write_sdc_entries(sdc, entries)

    # .........................................................................

    def track_control_signals(self):
        """
        Groups the control signal nets of all primitives by location. Returns
        instance name -> {key: (TrackedControl, messages/nets)}.
        """
        tracked_signals = {}
        prioritized = {}
        tracked_instances = {}

        technology = self.extractor.technology
        for signal in CONTROL_SIGNALS[technology]:
            self.post_msg(
                4, "Process {} fabric signal {}".format(
                    "output" if signal.direction == "in" else "input",
                    signal.name
                )
            )

            for csp in signal.primitives:
                self.post_msg(
                    5, "Look for primitive {} port {}".format(
                        csp.name, csp.port
                    )
                )

                for inst in self.extractor.instances:
                    if inst.module != csp.name:
                        continue

                    location = inst.parsed_location
                    assert location is not None, inst
                    self.post_msg(
                        6, "Instance {} location {}".format(
                            inst.name, location.location
                        )
                    )
                    tracked = tracked_instances.setdefault(inst.name, {})

                    rule_name = signal.name
                    if signal.is_ab():
                        if location.status == LocationStatus.GOOD:
                            rule_name += "_A" if location.index % 2 == 0 \
                                else "_B"
                        else:
                            rule_name += "_{A|B}"

                    assigned_location = location.location
                    if location.status == LocationStatus.GOOD and \
                       signal.is_shared_half_bank():
                        assigned_location = remap_half_first(location)

                    inst_key = "{}+{}+{}+{}".format(
                        csp.port, signal.direction, rule_name,
                        assigned_location
                    )
                    assert inst_key not in tracked, inst_key

                    if location.status != LocationStatus.GOOD:
                        type = wrapped_netlist.ERROR \
                            if location.status == LocationStatus.BAD \
                            else wrapped_netlist.SKIP
                        msg = "{}: {}".format(type, location.failure_reason)
                        self.post_msg(7, msg)
                        tracked[inst_key] = (
                            TrackedControl.BAD_LOCATION, [msg]
                        )
                        if type == wrapped_netlist.ERROR:
                            self.extractor.netlist_status = False
                        continue

                    self.post_msg(
                        7, "Effective assigned location: {}".format(
                            assigned_location
                        )
                    )

                    nets, type, reason = self.wrapped.get_instance_net_by_port(
                        inst.module, inst.linked_object(), csp.port
                    )
                    if reason:
                        msg = "{}: {}".format(type, reason)
                        self.post_msg(8, msg)
                        tracked[inst_key] = (
                            TrackedControl.BAD_WRAPPED_NET, [msg]
                        )
                        if type == wrapped_netlist.ERROR:
                            self.extractor.netlist_status = False
                        continue

                    key = "{} + {}".format(signal.name, assigned_location)
                    signals = tracked_signals.setdefault(key, [])
                    if signals and len(signals) != len(nets):
                        msg = "Error: Width of {} port {} ({}) does not " \
                            "match the width of primitive {} port {} " \
                            "({})".format(
                                inst.name, csp.port, len(nets),
                                prioritized[key][0], prioritized[key][1],
                                len(signals)
                            )
                        self.post_msg(8, msg)
                        tracked[inst_key] = (
                            TrackedControl.BAD_WRAPPED_NET, [msg]
                        )
                        self.extractor.netlist_status = False
                        continue

                    status = TrackedControl.GOOD
                    for i, net in enumerate(nets):
                        if i == len(signals):
                            self.post_msg(
                                8, "[{}] {} - prioritized".format(i, net)
                            )
                            signals.append(net)
                            prioritized.setdefault(key, (inst.name, csp.port))

                        elif signals[i] != net:
                            self.post_msg(
                                8, "{}: [{}] {} - conflict with primitive {} "
                                "port {} (net: {})".format(
                                    "Error" if csp.error else "Skip", i, net,
                                    prioritized[key][0], prioritized[key][1],
                                    signals[i]
                                )
                            )
                            if csp.error:
                                status = TrackedControl.CONFLICT
                                self.extractor.netlist_status = False
                            elif status != TrackedControl.CONFLICT:
                                status = TrackedControl.ACCEPTABLE_CONFLICT

                        else:
                            self.post_msg(8, "[{}] {} - match".format(i, net))
                            if status == TrackedControl.GOOD:
                                status = TrackedControl.MATCH

                    msgs = list(nets)
                    if status != TrackedControl.GOOD:
                        reason = {
                            TrackedControl.MATCH: "Match",
                            TrackedControl.ACCEPTABLE_CONFLICT:
                            "Acceptable-conflict",
                        }.get(status, "Conflict")
                        msgs.insert(
                            0, "{} with primitive {} port {}".format(
                                reason, prioritized[key][0],
                                prioritized[key][1]
                            )
                        )
                    tracked[inst_key] = (status, msgs)

        return tracked_instances

    def write_control_signal(self, sdc):
        self.post_msg(2, "Determine internal control signals")
        self.post_msg(3, "Group signals by location")
        tracked_instances = self.track_control_signals()

        write_section_header(sdc, "Internal Control Signals")
        self.post_msg(3, "Write out SDC")

        half_first_signals = set(
            s.name for s in CONTROL_SIGNALS[self.extractor.technology]
            if s.is_shared_half_bank()
        )

        entries = []
        for inst in self.extractor.instances:
            if inst.is_wire() or inst.name not in tracked_instances:
                continue

            linked_object = inst.linked_object()
            location = inst.parsed_location.location
            tracked = tracked_instances[inst.name]
            for inst_key in sorted(tracked):
                status, msgs = tracked[inst_key]
                port, direction, rule_name, assigned_location = \
                    inst_key.split("+", 3)

                self.post_msg(
                    4, "Module={} LinkedObject={} Location={} Port={} "
                    "Signal={}:{}".format(
                        inst.module, linked_object, location, port, direction,
                        rule_name
                    )
                )

                entry = SdcEntry()
                entry.comments.append("# Module: {}".format(inst.module))
                entry.comments.append("# LinkedObject: {}".format(linked_object))
                entry.comments.append("# Location: {}".format(location))
                entry.comments.append("# Port: {}".format(port))
                entry.comments.append(
                    "# Signal: {}:{}".format(direction, rule_name)
                )
                if rule_name in half_first_signals and \
                   inst.parsed_location.status == LocationStatus.GOOD:
                    entry.comments.append(
                        "# Remap location from {} to {}".format(
                            location, assigned_location
                        )
                    )

                postmsg = ""
                nets = list(msgs)
                if status in (TrackedControl.BAD_LOCATION,
                              TrackedControl.BAD_WRAPPED_NET):
                    assert len(msgs) == 1, msgs
                    postmsg = msgs[0]
                    nets = []
                elif status != TrackedControl.GOOD:
                    assert len(msgs) > 1, msgs
                    postmsg = "{}: {}".format(
                        "Error" if status == TrackedControl.CONFLICT else "Skip",
                        msgs[0]
                    )
                    nets = msgs[1:]
                else:
                    assert msgs, inst_key

                if postmsg:
                    entry.comments.append("# {}".format(postmsg))

                if nets:
                    location_key = "{}:{}".format(
                        "I" if inst.is_in_dir else "O", location
                    )
                    mode = self.location_mode.get(location_key, "")
                    if not mode:
                        entry.comments.append(
                            "# Error reason: Pin mode at location {} is not "
                            "defined".format(location)
                        )
                        self.extractor.netlist_status = False
                        mode = "MODE_BP_DIR"

                    prefix = "" if status == TrackedControl.GOOD else "# "
                    for i, net in enumerate(nets):
                        internal_pin = rule_name
                        if len(nets) > 1:
                            internal_pin = "{}[{}]".format(rule_name, i)
                        entry.assignments.append(
                            make_assignment(
                                prefix + "set_io", net, assigned_location,
                                "-mode", mode, "-internal_pin", internal_pin
                            )
                        )

                if postmsg:
                    self.post_msg(5, postmsg)

                entries.append(entry)

        write_sdc_entries(sdc, entries)

    # .........................................................................

    def write_gearbox_core_clock(self, sdc):
        self.post_msg(2, "Determine gearbox core clock")
        write_section_header(sdc, "Each gearbox core clock")

        entries = []
        core_clocks = {}
        for inst in self.extractor.instances:
            if inst.is_wire():
                continue

            core_clk = inst.primitive.db.core_clock
            if not core_clk:
                continue

            location = inst.parsed_location
            entry = SdcEntry()
            entries.append(entry)
            entry.comments.append("# Module: {}".format(inst.module))
            entry.comments.append("# Name: {}".format(inst.name))
            entry.comments.append("# Location: {}".format(location.location))
            entry.comments.append("# Port: {}".format(core_clk))

            clk_net = inst.connections.get(core_clk, "")
            if core_clk in inst.connections:
                entry.comments.append("# Net: {}".format(clk_net))
            if not clk_net:
                self.post_sdc_comment(
                    entry, 3, wrapped_netlist.ERROR,
                    "Port does not connect to valid net"
                )
                continue

            location_key = "{}:{}".format(
                "I" if inst.is_in_dir else "O", location.location
            )
            if not location.location or location_key not in self.location_mode:
                self.post_sdc_comment(
                    entry, 3, wrapped_netlist.ERROR, "Location is invalid"
                )
                continue

            slots = [
                i for i, f in enumerate(self.extractor.fabric_clocks)
                if inst.name in f.gearboxes
            ]
            if not slots:
                self.post_sdc_comment(
                    entry, 3, wrapped_netlist.ERROR,
                    "Cannot locate the fabric clock"
                )
                continue

            slot = slots[0]
            entry.comments.append("# Slot: {}".format(slot))
            assert location.status == LocationStatus.GOOD, location

            key = pair_key(location)
            if key not in core_clocks:
                core_clocks[key] = CoreClockInfo(
                    inst.module, inst.name, location.location, slot
                )
                entry.assignments.append(
                    make_assignment(
                        "set_core_clk", location.location, str(slot)
                    )
                )
            elif core_clocks[key].index == slot:
                self.post_sdc_comment(
                    entry, 3, wrapped_netlist.SKIP,
                    "Had been defined by {} {}".format(
                        core_clocks[key].module, core_clocks[key].name
                    )
                )
            else:
                self.post_sdc_comment(
                    entry, 3, wrapped_netlist.ERROR,
                    "Conflict - {} {} already use slot={}".format(
                        core_clocks[key].module, core_clocks[key].name,
                        core_clocks[key].index
                    )
                )

        write_sdc_entries(sdc, entries)


# =============================================================================


def write_sdc(extractor, wrapped, sdc_file, xml_file):
    """
    Writes the constraint and pin constraint XML files
    """
    if not extractor.summarized:
        raise extractor.Exception(
            "Constraints can only be written after a successful extraction"
        )
    SdcWriter(extractor, wrapped).write(sdc_file, xml_file)
