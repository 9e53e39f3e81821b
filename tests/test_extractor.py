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
import pytest

from primitives_extractor.extractor import PrimitivesExtractor, \
    SECONDARY_PIN_REASON
from primitives_extractor.location import LocationStatus
from primitives_extractor.model import ExtractorContext, PortDirection
from primitives_extractor.netlist import Design

from helpers import run_extractor, find_instance, has_msg

# =============================================================================


def instance_names(extractor):
    return [i.name for i in extractor.instances]


def test_single_input_buffer(ibuf_design):
    extractor = run_extractor(ibuf_design)

    assert extractor.overall_status()
    assert len(extractor.ports) == 1
    assert extractor.ports[0].linked_objects() == ["din"]
    assert extractor.child_primitives == []
    assert extractor.fabric_clocks == []

    assert instance_names(extractor) == ["ibuf"]
    instance = extractor.instances[0]
    assert instance.module == "I_BUF"
    assert instance.linked_object() == "din"
    assert instance.connections == {"I": "din", "O": "din_buf"}
    assert instance.flags == ["I_BUF"]
    assert instance.pre_primitive == ""
    assert instance.post_primitives == []

    pin = extractor.get_pin_info("din", PortDirection.IN)
    assert pin is not None
    assert pin.traces == ["I_BUF"]
    assert pin.mode == ""
    assert has_msg(extractor, "Final checking is good")


def test_unsupported_technology(ibuf_design):
    extractor = PrimitivesExtractor("unknown")

    assert not extractor.extract(ibuf_design)
    assert not extractor.overall_status()
    assert extractor.msgs[0].msg == \
        "Error: Technology unknown is not supported"
    assert extractor.instances == []


def test_no_ports():
    design = Design()
    top = design.add_module("top")
    top.add_wire("a")
    top.add_wire("b")
    top.add_cell("lut", "$lut", {"A": "a", "Y": "b"})

    extractor = run_extractor(design)

    assert not extractor.status
    assert has_msg(extractor, "Error: Fail to detect any port")
    assert not extractor.summarized


def test_alias_chain_generates_wire(alias_design):
    extractor = run_extractor(alias_design)

    assert extractor.overall_status()
    assert instance_names(extractor) == [
        "ibuf", "AUTO_clkbuf_clk_in_#0", "clkbuf"
    ]

    wire = extractor.instances[1]
    assert wire.is_wire()
    assert wire.module == "WIRE"
    assert wire.connections == {"I": "a", "O": "b"}
    assert wire.linked_objects == ["clk_in"]
    assert wire.is_in_dir

    clkbuf = find_instance(extractor, "clkbuf")
    assert clkbuf.pre_primitive == "I_BUF"
    assert find_instance(extractor, "ibuf").post_primitives == ["CLK_BUF"]

    # Fabric logic uses the buffered clock
    assert len(extractor.fabric_clocks) == 1
    assert clkbuf.parameters["ROUTE_TO_FABRIC_CLK"] == "0"
    assert clkbuf.properties["clk_in"]["ROUTE_TO_FABRIC_CLK"] == "0"
    assert "PIN_CLOCK_CORE_ONLY" in clkbuf.flags


def test_failed_trace_messages_are_dropped(pll_design):
    failed = "Try I_BUF ibuf_d out connection: d_ibuf -> clkbuf"

    extractor = run_extractor(pll_design)
    assert has_msg(
        extractor, "Try I_BUF ibuf_clk out connection: clk_ibuf -> clkbuf"
    )
    assert not has_msg(extractor, failed)

    extractor = run_extractor(
        pll_design, context=ExtractorContext(debug=True)
    )
    assert has_msg(extractor, failed)


def test_pll_fabric_clock_and_gearbox(pll_design):
    extractor = run_extractor(pll_design)

    assert extractor.overall_status()
    assert instance_names(extractor) == [
        "ibuf_clk", "clkbuf", "pll", "ibuf_d", "iserdes"
    ]

    # Only the PLL output is used by fabric logic and a gearbox
    assert len(extractor.fabric_clocks) == 1
    clock = extractor.fabric_clocks[0]
    assert clock.linked_object == "clk_in"
    assert clock.module == "PLL"
    assert clock.iport == "CLK_IN"
    assert clock.inet == "clk_core"
    assert clock.oport == "CLK_OUT"
    assert clock.onet == "pll_out"
    assert clock.gearboxes == ["iserdes"]
    assert clock.core_logic

    pll = find_instance(extractor, "pll")
    assert pll.parameters["OUT0_ROUTE_TO_FABRIC_CLK"] == "0"
    assert pll.gearbox_clocks == {"FAST_CLK": ["iserdes"]}

    iserdes = find_instance(extractor, "iserdes")
    assert iserdes.parameters["WIDTH"] == "4"
    assert iserdes.primitive.data_width == 4
    assert extractor.ports[1].chain_data_width == 4
    assert iserdes.errors() == []

    pin = extractor.get_pin_info("din", PortDirection.IN)
    assert pin.mode == "RATE_4"
    assert pin.full_traces == ["I_BUF -> I_SERDES"]

    pin = extractor.get_pin_info("clk_in", PortDirection.IN)
    assert pin.traces == ["I_BUF -> CLK_BUF -> PLL"]
    assert pin.mode == ""


def test_fabric_clock_slots_are_monotonic(pll_design):
    top = pll_design.top_module()
    top.add_cell("dff2", "$dff", {"CLK": "clk_core", "D": "q", "Q": "q"})

    extractor = run_extractor(pll_design)

    assert extractor.overall_status()
    assert [c.name for c in extractor.fabric_clocks] == ["clkbuf", "pll"]
    assert find_instance(extractor, "clkbuf").parameters[
        "ROUTE_TO_FABRIC_CLK"] == "0"
    assert find_instance(extractor, "pll").parameters[
        "OUT0_ROUTE_TO_FABRIC_CLK"] == "1"


def test_fabric_clock_slot_limit(pll_design):
    top = pll_design.top_module()
    top.add_cell("dff2", "$dff", {"CLK": "clk_core", "D": "q", "Q": "q"})

    extractor = run_extractor(
        pll_design, context=ExtractorContext(max_fabric_clock_slot=1)
    )

    assert extractor.status
    assert not extractor.netlist_status
    assert len(extractor.fabric_clocks) == 1
    assert find_instance(extractor, "pll").errors() == [
        "Run out of fabric clock slot (max 1)"
    ]


def test_pll_fast_clock_cannot_be_core_clock(pll_design):
    top = pll_design.top_module()
    top.add_cell("dff2", "$dff", {"CLK": "pll_fast", "D": "q", "Q": "q"})

    extractor = run_extractor(pll_design)

    assert not extractor.netlist_status
    assert find_instance(extractor, "pll").errors() == [
        "Cannot be used as core clock"
    ]


def test_core_clock_only_pin(oddr_design):
    extractor = run_extractor(oddr_design)

    assert extractor.overall_status()
    assert instance_names(extractor) == ["ibuf_clk", "clkbuf", "obuf", "oddr"]

    clkbuf = find_instance(extractor, "clkbuf")
    assert "PIN_CLOCK_CORE_ONLY" in clkbuf.flags
    assert clkbuf.parameters["ROUTE_TO_FABRIC_CLK"] == "0"

    clock = extractor.fabric_clocks[0]
    assert clock.gearboxes == ["oddr"]
    assert not clock.core_logic

    pin = extractor.get_pin_info("dout", PortDirection.OUT)
    assert pin.mode == "DDR"
    assert pin.traces == ["O_DDR -> O_BUF"]
    assert has_msg(extractor, "Good. Found clocking")


def test_output_chain_generation_order():
    design = Design()
    top = design.add_module("top")
    top.add_wire("clk", direction="input")
    top.add_wire("dout", direction="output")
    top.add_wire("ddr_q")
    top.add_wire("ddr_q2")
    top.add_cell("obuf", "O_BUF", {"I": "ddr_q", "O": "dout"})
    top.connect("ddr_q", "ddr_q2")
    top.add_cell("oddr", "O_DDR", {"C": "clk", "Q": "ddr_q2"})

    extractor = run_extractor(design)
    assert extractor.overall_status()
    assert instance_names(extractor) == [
        "obuf", "AUTO_oddr_dout_#0", "oddr"
    ]
    assert extractor.instances[1].connections == {"I": "ddr_q", "O": "ddr_q2"}
    assert not extractor.instances[1].is_in_dir

    # The core clock comes straight from a pin, nothing routes it
    assert has_msg(extractor, "Warning: Bad. No clocking")

    extractor = run_extractor(
        design, context=ExtractorContext(generation_order="outward")
    )
    assert extractor.overall_status()
    assert instance_names(extractor) == [
        "oddr", "AUTO_oddr_dout_#0", "obuf"
    ]


def test_children_follow_parent_subtree():
    design = Design()
    top = design.add_module("top")
    top.add_wire("din", direction="input")
    for name in ("x", "clk_g", "pll_out", "d_dly"):
        top.add_wire(name)
    top.add_cell("ibuf", "I_BUF", {"I": "din", "O": "x"})
    top.add_cell("clkbuf", "CLK_BUF", {"I": "x", "O": "clk_g"})
    top.add_cell("pll", "PLL", {"CLK_IN": "clk_g", "CLK_OUT": "pll_out"})
    top.add_cell(
        "idelay", "I_DELAY", {
            "I": "x",
            "CLK_IN": "clk_g",
            "O": "d_dly"
        }
    )

    extractor = run_extractor(design)

    assert extractor.overall_status()
    assert instance_names(extractor) == ["ibuf", "clkbuf", "pll", "idelay"]
    assert find_instance(extractor, "ibuf").post_primitives == [
        "CLK_BUF", "I_DELAY"
    ]
    assert find_instance(extractor, "clkbuf").gearbox_clocks == {
        "O": ["idelay"]
    }

    pin = extractor.get_pin_info("din", PortDirection.IN)
    assert pin.full_traces == ["I_BUF -> CLK_BUF -> PLL", "I_BUF -> I_DELAY"]
    assert pin.traces == [
        "I_BUF -> CLK_BUF -> PLL", "{} -> I_DELAY".format(" " * len("I_BUF"))
    ]


def test_unroutable_fast_clock():
    design = Design()
    top = design.add_module("top")
    top.add_wire("din", direction="input")
    top.add_wire("clk", direction="input")
    top.add_wire("d_ibuf")
    top.add_cell("ibuf", "I_BUF", {"I": "din", "O": "d_ibuf"})
    top.add_cell("iddr", "I_DDR", {"D": "d_ibuf", "C": "clk"})

    extractor = run_extractor(design)

    assert extractor.status
    assert not extractor.netlist_status
    assert find_instance(extractor, "iddr").errors() == [
        "I_DDR iddr fast clock port C (net: clk) is not routable"
    ]
    assert extractor.get_pin_info("din", PortDirection.IN).mode == "DDR"


def test_lower_priority_fast_clock_is_ignored():
    design = Design()
    top = design.add_module("top")
    top.add_wire("din", direction="input")
    top.add_wire("clk", direction="input")
    for name in ("d_ibuf", "d_dly", "core_clk", "fast_clk"):
        top.add_wire(name)
    top.add_cell("ibuf", "I_BUF", {"I": "din", "O": "d_ibuf"})
    top.add_cell(
        "idelay", "I_DELAY", {
            "I": "d_ibuf",
            "CLK_IN": "clk",
            "O": "d_dly"
        }
    )
    top.add_cell(
        "iserdes",
        "I_SERDES", {
            "D": "d_dly",
            "CLK_IN": "core_clk",
            "PLL_CLK": "fast_clk"
        },
        parameters={"WIDTH": "8"}
    )

    extractor = run_extractor(design)

    assert instance_names(extractor) == ["ibuf", "idelay", "iserdes"]
    assert find_instance(extractor, "idelay").errors() == []
    assert find_instance(extractor, "iserdes").errors() == [
        "I_SERDES iserdes fast clock port PLL_CLK (net: fast_clk) is not "
        "routable"
    ]
    assert has_msg(
        extractor, "Ignore this because I_SERDES iserdes in chain has higher "
        "priority fast clock port"
    )


def test_serdes_without_width():
    design = Design()
    top = design.add_module("top")
    top.add_wire("din", direction="input")
    for name in ("d_ibuf", "clk_g", "core_clk"):
        top.add_wire(name)
    top.add_cell("ibuf", "I_BUF", {"I": "din", "O": "d_ibuf"})
    top.add_cell(
        "iserdes", "I_SERDES", {
            "D": "d_ibuf",
            "CLK_IN": "core_clk",
            "PLL_CLK": "clk_g"
        }
    )

    extractor = run_extractor(design)

    iserdes = find_instance(extractor, "iserdes")
    assert "I_SERDES iserdes does not have parameter WIDTH" in \
        iserdes.errors()
    assert iserdes.primitive.data_width == -2
    assert not extractor.netlist_status

    # Without a width the rate falls back to single data rate
    assert extractor.get_pin_info("din", PortDirection.IN).mode == "SDR"


def test_boot_clock_is_standalone():
    design = Design()
    top = design.add_module("top")
    top.add_wire("din", direction="input")
    for name in ("osc", "pll_out", "q"):
        top.add_wire(name)
    top.add_cell("boot", "BOOT_CLOCK", {"O": "osc"})
    top.add_cell("pll", "PLL", {"CLK_IN": "osc", "CLK_OUT": "pll_out"})
    top.add_cell("dff", "$dff", {"CLK": "pll_out", "D": "q", "Q": "q"})

    context = ExtractorContext()
    extractor = run_extractor(design, context=context)

    assert extractor.overall_status()
    assert extractor.ports[0].linked_object() == "BOOT_CLOCK#0"
    assert instance_names(extractor) == ["boot", "pll"]
    assert extractor.fabric_clocks[0].linked_object == "BOOT_CLOCK#0"
    assert find_instance(extractor, "pll").linked_objects == ["BOOT_CLOCK#0"]

    pin = extractor.get_pin_info("BOOT_CLOCK#0", PortDirection.IN)
    assert pin.is_standalone

    # Names restart with every run
    extractor = run_extractor(design, context=context)
    assert extractor.ports[0].linked_object() == "BOOT_CLOCK#0"


def test_fabric_clock_buffer():
    design = Design()
    top = design.add_module("top")
    top.add_wire("din", direction="input")
    for name in ("fab_clk", "fab_clk_buf", "q"):
        top.add_wire(name)
    top.add_cell("lut", "$lut", {"A": "din", "Y": "fab_clk"})
    top.add_cell("fclk", "FCLK_BUF", {"I": "fab_clk", "O": "fab_clk_buf"})
    top.add_cell("dff", "$dff", {"CLK": "fab_clk_buf", "D": "q", "Q": "q"})

    extractor = run_extractor(design)

    assert extractor.overall_status()
    assert extractor.ports[0].linked_object() == "FABRIC_CLKBUF#0"

    fclk = find_instance(extractor, "fclk")
    assert fclk.parameters["ROUTE_TO_FABRIC_CLK"] == "0"
    assert fclk.parameters["ROUTE_FROM_FABRIC_CLK"] == "0"

    clock = extractor.fabric_clocks[0]
    assert clock.is_fabric_clkbuf
    assert clock.inet == "fab_clk"
    assert clock.onet == "fab_clk_buf"


def test_fabric_clock_buffer_needs_fabric_on_both_sides():
    design = Design()
    top = design.add_module("top")
    top.add_wire("din", direction="input")
    top.add_wire("fab_clk_buf")
    top.add_cell("fclk", "FCLK_BUF", {"I": "din", "O": "fab_clk_buf"})

    extractor = run_extractor(design)

    assert extractor.ports == []
    assert not extractor.netlist_status
    assert has_msg(extractor, "Error: Missing FCLK_BUF (fclk) in primitive list")


def test_missing_cell_is_reported():
    design = Design()
    top = design.add_module("top")
    top.add_wire("din", direction="input")
    for name in ("a", "b", "c"):
        top.add_wire(name)
    top.add_cell("idelay", "I_DELAY", {"I": "a", "CLK_IN": "b", "O": "c"})

    extractor = run_extractor(design)

    assert extractor.status
    assert not extractor.netlist_status
    assert has_msg(extractor, "Error: Missing I_DELAY (idelay) in primitive list")
    assert has_msg(extractor, "Error: Missing I_DELAY (idelay) in instance list")


def test_port_primitive_without_port():
    design = Design()
    top = design.add_module("top")
    top.add_wire("din", direction="input")
    top.add_wire("a")
    top.add_wire("b")
    top.add_cell("ibuf", "I_BUF", {"I": "a", "O": "b"})

    extractor = run_extractor(design)

    assert extractor.ports == []
    assert not extractor.netlist_status
    assert has_msg(
        extractor, "Error: There is no port connection to cell port I"
    )


def test_differential_input():
    design = Design()
    top = design.add_module("top")
    top.add_wire("din_p", direction="input")
    top.add_wire("din_n", direction="input")
    top.add_wire("d")
    top.add_cell(
        "ibuf_ds", "I_BUF_DS", {
            "I_P": "din_p",
            "I_N": "din_n",
            "O": "d"
        }
    )

    extractor = run_extractor(design)

    assert extractor.overall_status()
    port = extractor.ports[0]
    assert port.linked_objects() == ["din_n", "din_p"]
    assert port.linked_object() == "din_n+din_p"

    assert extractor.get_pin_info("din_n",
                                  PortDirection.IN).skip_reason == \
        SECONDARY_PIN_REASON
    assert extractor.get_pin_info("din_p", PortDirection.IN).skip_reason == ""


def test_inout_port():
    design = Design()
    top = design.add_module("top")
    top.add_wire("pad", direction="inout")
    top.add_wire("rx")
    top.add_wire("tx")
    top.add_cell("ibuf", "I_BUF", {"I": "pad", "O": "rx"})
    top.add_cell("obuft", "O_BUFT", {"I": "tx", "O": "pad"})

    extractor = run_extractor(design)

    assert extractor.overall_status()
    assert "INOUT" in find_instance(extractor, "ibuf").flags
    assert "INOUT" in find_instance(extractor, "obuft").flags
    assert extractor.get_pin_info("pad", PortDirection.IN) is not None
    assert extractor.get_pin_info("pad", PortDirection.OUT) is not None


def test_vector_port_names():
    design = Design()
    top = design.add_module("top")
    top.add_wire("bus", width=2, start_offset=4, direction="input")
    top.add_wire("d", width=2)
    top.add_cell("ibuf0", "I_BUF", {"I": ("bus", 0), "O": ("d", 0)})
    top.add_cell("ibuf1", "I_BUF", {"I": ("bus", 1), "O": ("d", 1)})

    extractor = run_extractor(design)

    assert extractor.overall_status()
    assert [p.linked_object() for p in extractor.ports] == ["bus[4]", "bus[5]"]


# =============================================================================


def test_assign_location(oddr_design):
    extractor = run_extractor(oddr_design)

    extractor.assign_location("dout", "HP_1_20_10P", {"IO_STANDARD": "LVCMOS"})

    obuf = find_instance(extractor, "obuf")
    oddr = find_instance(extractor, "oddr")
    assert obuf.locations == {"dout": "HP_1_20_10P"}
    assert obuf.properties["dout"] == {"IO_STANDARD": "LVCMOS"}
    assert oddr.properties["dout"] == {}
    assert extractor.get_pin_info("dout",
                                  PortDirection.OUT).location == "HP_1_20_10P"

    assert extractor.get_primitive_locations_by_name("oddr") == ["HP_1_20_10P"]
    assert extractor.get_primitive_locations_by_name(
        "obuf", unique_location=False
    ) == ["HP_1_20_10P"]
    assert extractor.get_primitive_locations_by_name("missing") == []

    # The chain member inherits the location of its root
    assert oddr.primary_object == "dout"
    assert oddr.location_status() == LocationStatus.GOOD


def test_bad_locations(oddr_design):
    extractor = run_extractor(oddr_design)

    extractor.assign_location("dout", "HP_1_20_10N")
    extractor.finalize_locations()

    bad = extractor.get_bad_locations()
    assert [i.name for i, _ in bad] == ["obuf", "oddr"]
    assert bad[0][1] == "Location HP_1_20_10N P/N is invalid"
    assert find_instance(extractor, "clkbuf").location_status() == \
        LocationStatus.SKIP


def test_assign_location_before_extraction():
    extractor = PrimitivesExtractor("genesis3")

    with pytest.raises(PrimitivesExtractor.Exception):
        extractor.assign_location("dout", "HP_1_20_10P")


def test_cell_has_a_single_parent():
    design = Design()
    top = design.add_module("top")
    top.add_wire("clk", direction="input")
    top.add_wire("dout_a", direction="output")
    top.add_wire("dout_b", direction="output")
    top.add_wire("d")
    top.add_wire("n")
    top.add_cell("obuf_a", "O_BUF", {"I": "n", "O": "dout_a"})
    top.add_cell("obuf_b", "O_BUF", {"I": "n", "O": "dout_b"})
    top.add_cell("dly", "O_DELAY", {"I": "d", "CLK_IN": "clk", "O": "n"})

    extractor = run_extractor(design)

    assert not extractor.overall_status()
    assert [p.name for p in extractor.child_primitives] == ["dly"]
    assert instance_names(extractor) == ["obuf_a", "dly", "obuf_b"]
    assert find_instance(extractor, "dly").pre_primitive == "O_BUF"
    assert find_instance(extractor, "obuf_b").errors() == [
        "O_DELAY dly is already connected to O_BUF obuf_a, ignore the "
        "connection from O_BUF obuf_b"
    ]
    assert has_msg(extractor, "Final checking is good")


def test_invalid_data_rate():
    design = Design()
    top = design.add_module("top")
    top.add_wire("clk", direction="input")
    top.add_wire("dout", direction="output")
    top.add_wire("clk_out")
    top.add_cell("obuf", "O_BUF", {"I": "clk_out", "O": "dout"})
    top.add_cell(
        "oclk",
        "O_SERDES_CLK", {
            "PLL_CLK": "clk",
            "OUTPUT_CLK": "clk_out"
        },
        parameters={"DATA_RATE": "QDR"}
    )

    extractor = run_extractor(design)

    assert extractor.status
    assert not extractor.overall_status()
    assert extractor.summarized
    assert "Pin dout O_SERDES_CLK oclk has invalid DATA_RATE QDR" in \
        find_instance(extractor, "oclk").errors()
    assert extractor.get_pin_info("dout", PortDirection.OUT).mode == "SDR"
