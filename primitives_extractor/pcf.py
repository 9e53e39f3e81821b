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
Reader for simple PCF files. Only "set_io" constraints are supported:

  set_io <port> <location> [-<KEY> <VALUE>]...
"""
import re
import shlex

from collections import namedtuple

# =============================================================================

PcfIoConstraint = namedtuple(
    "PcfIoConstraint", "net pad properties line_str line_num"
)

COMMENT_RE = re.compile(r"#.*$")


class PcfError(Exception):
    """
    Raised on a malformed PCF line
    """
    pass


def parse_simple_pcf(f):
    """
    Yields a PcfIoConstraint for each "set_io" line of the file object
    """
    for line_number, line in enumerate(f, 1):
        line_str = line.rstrip("\n")
        line = COMMENT_RE.sub("", line).strip()
        if not line:
            continue

        args = shlex.split(line)
        if args[0] != "set_io":
            raise PcfError(
                "Line {}: unsupported command '{}'".format(line_number, args[0])
            )

        if len(args) < 3:
            raise PcfError(
                "Line {}: set_io needs a port and a location".format(
                    line_number
                )
            )

        properties = {}
        options = args[3:]
        if len(options) % 2:
            raise PcfError(
                "Line {}: option '{}' has no value".format(
                    line_number, options[-1]
                )
            )
        for key, value in zip(options[0::2], options[1::2]):
            if not key.startswith("-") or len(key) < 2:
                raise PcfError(
                    "Line {}: invalid option '{}'".format(line_number, key)
                )
            properties[key[1:]] = value

        yield PcfIoConstraint(
            net=args[1],
            pad=args[2],
            properties=properties,
            line_str=line_str,
            line_num=line_number,
        )
