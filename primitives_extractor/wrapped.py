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
Read-only queries over the wrapped netlist.

The wrapped netlist is a list of instances, each a dict with "module",
"name", an optional "linked_object" and a "connectivity" dict that maps a
port name to a net name or to a list of net names. Pass-through nets are
instances of the "WIRE" module, the programmable fabric is the single
instance whose module starts with "fabric_".
"""
import json

from primitives_extractor.model import sort_name

# =============================================================================

WIRE_MODULE = "WIRE"

FABRIC_MODULE_PREFIX = "fabric_"

# Reason types returned by port queries
ERROR = "Error"
SKIP = "Skip"


class WrappedNetlist:
    """
    The netlist produced after the design got wrapped with I/O primitives
    """

    def __init__(self, instances):
        assert isinstance(instances, list), type(instances)
        self.instances = instances

    @staticmethod
    def load(file_name):
        """
        Loads the wrapped netlist from a JSON file. Both a bare instance list
        and an object with an "instances" list are accepted.
        """
        with open(file_name, "r") as fp:
            json_root = json.load(fp)

        if isinstance(json_root, dict):
            json_root = json_root.get("instances", [])
        return WrappedNetlist(json_root)

    # .........................................................................

    def fabric_instance(self):
        """
        Returns the fabric instance or None
        """
        for instance in self.instances:
            if instance.get("module", "").startswith(FABRIC_MODULE_PREFIX):
                return instance
        return None

    def wires(self):
        for instance in self.instances:
            if instance.get("module", "") == WIRE_MODULE:
                yield instance

    def find_instance(self, name):
        """
        Finds an instance by its exact name or by a hierarchical name ending
        with ".<name>"
        """
        assert name
        suffix = "." + name
        for instance in self.instances:
            inst_name = instance.get("name", "")
            if inst_name == name or (
                    len(inst_name) > len(suffix) and inst_name.endswith(suffix)):
                return instance
        return None

    def is_fabric_port(self, net):
        fabric = self.fabric_instance()
        if fabric is None:
            return False
        return net in fabric.get("connectivity", {})

    def check_fabric_port(self, nets):
        """
        Returns, for each net, whether the fabric has a port of that name
        """
        fabric = self.fabric_instance()
        if fabric is None:
            return []
        connectivity = fabric.get("connectivity", {})
        return [net in connectivity for net in nets]

    # .........................................................................

    def _follow_wires(self, net, src, dst):
        for wire in self.wires():
            connectivity = wire.get("connectivity", {})
            if connectivity.get(src, None) == net:
                net = connectivity.get(dst, net)
        return net

    def get_input_wrapped_net(self, instance, port):
        """
        Returns the fabric side name of the net driving the port of the
        instance, an empty string if it does not reach the fabric
        """
        net = instance.get("connectivity", {}).get(port, "")
        if not isinstance(net, str) or not net:
            return ""

        net = self._follow_wires(net, "O", "I")
        if not self.is_fabric_port(net):
            return ""
        return net

    def get_output_wrapped_net(self, instance, port):
        """
        Returns the fabric side name of the net driven by the port of the
        instance, an empty string if it does not reach the fabric
        """
        net = instance.get("connectivity", {}).get(port, "")
        if not isinstance(net, str) or not net:
            return ""

        net = self._follow_wires(net, "I", "O")
        if not self.is_fabric_port(net):
            return ""
        return net

    def get_instance_net_by_port(self, module, linked_object, port):
        """
        Returns (nets, reason_type, reason) for a port of the instance of the
        module serving the linked object. The reason type is empty on
        success, ERROR or SKIP otherwise.
        """
        for instance in self.instances:
            if instance.get("module", "") != module or \
               "linked_object" not in instance:
                continue
            if sort_name(instance["linked_object"]) != linked_object:
                continue

            connectivity = instance.get("connectivity", {})
            if port not in connectivity:
                return [], SKIP, "User design does not utilize linked-object " \
                    "{} wrapped-instance port {}".format(linked_object, port)

            value = connectivity[port]
            nets = list(value) if isinstance(value, list) else [value]
            if not all(isinstance(net, str) and net for net in nets):
                return [], ERROR, "Invalid linked-object {} " \
                    "wrapped-instance port {} net {}".format(
                        linked_object, port, value
                    )
            if not nets:
                return [], ERROR, "Unable to find linked-object {} " \
                    "wrapped-instance port {} data net".format(
                        linked_object, port
                    )
            return nets, "", ""

        return [], ERROR, "Unable to find linked-object {} wrapped-instance" \
            .format(linked_object)

    def follow_next_wire(self, nets, src, dst):
        """
        Pushes each net through at most one pass-through wire
        """
        assert src in ("I", "O") and dst in ("I", "O") and src != dst

        result = []
        for net in nets:
            for wire in self.wires():
                connectivity = wire.get("connectivity", {})
                if connectivity.get(src, None) == net:
                    net = connectivity.get(dst, net)
                    break
            result.append(net)
        return result
