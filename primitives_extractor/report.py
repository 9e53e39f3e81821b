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
JSON report of an extraction run
"""
import json

# =============================================================================


def instance_to_json(instance):
    instance.finalize_location()

    linked_objects = {}
    for obj in instance.linked_objects:
        linked_objects[obj] = {
            "location": instance.locations[obj],
            "properties": dict(sorted(instance.properties[obj].items())),
        }

    return {
        "module": instance.module,
        "name": instance.name,
        "location_object": instance.primary_object,
        "location": instance.parsed_location.location,
        "linked_object": instance.linked_object(),
        "linked_objects": linked_objects,
        "connectivity": dict(sorted(instance.connections.items())),
        "parameters": dict(sorted(instance.parameters.items())),
        "flags": list(instance.flags),
        "pre_primitive": instance.pre_primitive,
        "post_primitives": list(instance.post_primitives),
        "route_clock_to": {
            port: list(names)
            for port, names in instance.gearbox_clocks.items()
        },
        "errors": list(instance.errors()),
    }


def build_report(extractor):
    """
    Builds the report as a dict
    """
    messages = ["Start of IO Analysis"]
    for msg in extractor.msgs:
        messages.append("{}{}".format("  " * msg.offset, msg.msg))
    messages.append("End of IO Analysis")

    instances = []
    if extractor.status:
        instances = [instance_to_json(i) for i in extractor.instances]

    return {
        "status": extractor.overall_status(),
        "messages": messages,
        "instances": instances,
    }


def write_json(extractor, file_name):
    report = build_report(extractor)
    with open(file_name, "w") as fp:
        json.dump(report, fp, indent=4)
        fp.write("\n")
