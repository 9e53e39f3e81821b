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
Small hand-built netlists shared by the tests
"""
import pytest

from primitives_extractor.netlist import Design
from primitives_extractor.wrapped import WrappedNetlist

from helpers import build_oddr_design

# =============================================================================


@pytest.fixture
def ibuf_design():
    """
    din -> I_BUF -> fabric
    """
    design = Design()
    top = design.add_module("top")
    top.add_wire("din", direction="input")
    top.add_wire("din_buf")
    top.add_wire("q")
    top.add_cell("ibuf", "I_BUF", {"I": "din", "O": "din_buf"})
    top.add_cell("lut", "$lut", {"A": "din_buf", "Y": "q"})
    return design


@pytest.fixture
def alias_design():
    """
    clk_in -> I_BUF -> (assign) -> CLK_BUF -> fabric
    """
    design = Design()
    top = design.add_module("top")
    top.add_wire("clk_in", direction="input")
    top.add_wire("a")
    top.add_wire("b")
    top.add_wire("clk_g")
    top.add_wire("q")
    top.add_cell("ibuf", "I_BUF", {"I": "clk_in", "O": "a"})
    top.connect("b", "a")
    top.add_cell("clkbuf", "CLK_BUF", {"I": "b", "O": "clk_g"})
    top.add_cell("dff", "$dff", {"CLK": "clk_g", "D": "q", "Q": "q"})
    return design


@pytest.fixture
def pll_design():
    """
    clk_in -> I_BUF -> CLK_BUF -> PLL, the PLL drives an I_SERDES fed by din
    """
    design = Design()
    top = design.add_module("top")
    top.add_wire("clk_in", direction="input")
    top.add_wire("din", direction="input")
    for name in ("clk_ibuf", "clk_core", "pll_out", "pll_fast", "d_ibuf", "q"):
        top.add_wire(name)
    top.add_wire("rx_data", width=4)

    top.add_cell("ibuf_clk", "I_BUF", {"I": "clk_in", "O": "clk_ibuf"})
    top.add_cell("clkbuf", "CLK_BUF", {"I": "clk_ibuf", "O": "clk_core"})
    top.add_cell(
        "pll", "PLL", {
            "CLK_IN": "clk_core",
            "CLK_OUT": "pll_out",
            "FAST_CLK": "pll_fast"
        }
    )
    top.add_cell("dff", "$dff", {"CLK": "pll_out", "D": "q", "Q": "q"})
    top.add_cell("ibuf_d", "I_BUF", {"I": "din", "O": "d_ibuf"})
    top.add_cell(
        "iserdes",
        "I_SERDES", {
            "D": "d_ibuf",
            "CLK_IN": "pll_out",
            "PLL_CLK": "pll_fast",
            "Q": "rx_data"
        },
        parameters={"WIDTH": "4"}
    )
    return design


@pytest.fixture
def oddr_design():
    return build_oddr_design()


@pytest.fixture
def oddr_wrapped():
    return WrappedNetlist(
        [
            {
                "module": "I_BUF",
                "name": "ibuf_clk",
                "linked_object": "clk_in",
                "connectivity": {
                    "I": "clk_in",
                    "O": "clk_ibuf"
                }
            },
            {
                "module": "CLK_BUF",
                "name": "clkbuf",
                "linked_object": "clk_in",
                "connectivity": {
                    "I": "clk_ibuf",
                    "O": "clk_g"
                }
            },
            {
                "module": "O_BUF",
                "name": "obuf",
                "linked_object": "dout",
                "connectivity": {
                    "I": "ddr_q",
                    "O": "dout"
                }
            },
            {
                "module": "O_DDR",
                "name": "oddr",
                "linked_object": "dout",
                "connectivity": {
                    "D": ["ddr_d0", "ddr_d1"],
                    "R": "rst",
                    "E": "en",
                    "C": "clk_g",
                    "Q": "ddr_q"
                }
            },
            {
                "module": "WIRE",
                "name": "clk_wire",
                "connectivity": {
                    "I": "clk_g",
                    "O": "clk_fabric"
                }
            },
            {
                "module": "fabric_top",
                "name": "fabric",
                "connectivity": {
                    "ddr_d0": "ddr_d0",
                    "ddr_d1": "ddr_d1",
                    "rst": "rst",
                    "en": "en",
                    "clk_fabric": "clk_fabric"
                }
            },
        ]
    )
