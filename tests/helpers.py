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
from primitives_extractor.extractor import PrimitivesExtractor
from primitives_extractor.netlist import Design

# =============================================================================


def run_extractor(design, **kwargs):
    """
    Runs an extraction, returns the extractor
    """
    extractor = PrimitivesExtractor("genesis3", **kwargs)
    extractor.extract(design)
    return extractor


def find_instance(extractor, name):
    for instance in extractor.instances:
        if instance.name == name:
            return instance
    raise KeyError(name)


def has_msg(extractor, text):
    return any(text in m.msg for m in extractor.msgs)


def build_oddr_design(fabric_uses_clock=False):
    """
    clk_in -> I_BUF -> CLK_BUF, the clock is the core clock of an O_DDR
    which drives dout through an O_BUF
    """
    design = Design()
    top = design.add_module("top")
    top.add_wire("clk_in", direction="input")
    top.add_wire("dout", direction="output")
    for name in ("clk_ibuf", "clk_g", "ddr_q", "rst", "en", "q"):
        top.add_wire(name)
    top.add_wire("ddr_d", width=2)

    top.add_cell("ibuf_clk", "I_BUF", {"I": "clk_in", "O": "clk_ibuf"})
    top.add_cell("clkbuf", "CLK_BUF", {"I": "clk_ibuf", "O": "clk_g"})
    top.add_cell("obuf", "O_BUF", {"I": "ddr_q", "O": "dout"})
    top.add_cell(
        "oddr", "O_DDR", {
            "D": "ddr_d",
            "R": "rst",
            "E": "en",
            "C": "clk_g",
            "Q": "ddr_q"
        }
    )
    if fabric_uses_clock:
        top.add_cell("dff", "$dff", {"CLK": "clk_g", "D": "q", "Q": "q"})
    return design
