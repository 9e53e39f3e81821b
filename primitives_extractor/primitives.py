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
Database of supported I/O primitives and of the internal control signals
they expose to the fabric.

Port primitives connect directly to a design pin. Everything else is found
by tracing the chain from a port (or standalone) primitive. The tables are
the only place where primitive specific behavior is described.
"""
from enum import Enum, IntFlag

# =============================================================================


class Feature(IntFlag):
    NULL = 0
    NOT_READY = 1 << 0
    PORT = 1 << 1
    STANDALONE = 1 << 2
    PORT_CLOCK = 1 << 3
    CLOCK = 1 << 4
    GEARBOX_CLOCK = 1 << 5
    ANY_INPUTS = 1 << 6
    ANY_OUTPUTS = 1 << 7
    OPTIONAL_INPUT = 1 << 8
    OPTIONAL_OUTPUT = 1 << 9
    IN_DIR = 1 << 10
    FABRIC_CLKBUF = 1 << 11
    LOWER_FAST_CLOCK_PRIORITY = 1 << 12


class PrimitiveRequirement(Enum):
    DONT_CARE = 0
    IS_PORT = 1
    NOT_PORT = 2
    IS_STANDALONE = 3
    IS_FABRIC_CLKBUF = 4


class PrimitiveDescriptor:
    """
    Describes a supported primitive.

    Output port names may carry a trait as "<port>:<trait>", eg.
    "FAST_CLK:NOT_CORE". The core clock may be restricted to clocks coming
    from specific primitive types as "<type>[,<type>...]:<port>".
    """

    def __init__(
        self,
        name,
        feature,
        inputs=(),
        outputs=(),
        intrace="",
        outtrace="",
        fast_clock="",
        core_clock="",
        data_signal="",
        properties=None
    ):
        self.name = name
        self.feature = Feature(feature)
        self.inputs = list(inputs)

        self.outputs = []
        self.output_traits = {}
        for output in outputs:
            port, trait = split_trait(output)
            self.outputs.append(port)
            if trait:
                assert port not in self.output_traits, (name, port)
                self.output_traits[port] = trait

        self.intrace_connection = intrace
        self.outtrace_connection = outtrace
        self.fast_clock = fast_clock

        self.core_clock_sources = []
        self.core_clock = core_clock
        if ":" in core_clock:
            sources, self.core_clock = core_clock.split(":", maxsplit=1)
            self.core_clock_sources = sources.split(",")

        self.data_signal = data_signal
        self.properties = dict(properties or {})

    def __repr__(self):
        return "PrimitiveDescriptor({})".format(self.name)

    def get_checking_ports(self):
        if self.is_in_dir():
            return self.inputs
        return self.outputs

    def has(self, feature):
        return (self.feature & feature) != Feature.NULL

    def is_ready(self):
        return not self.has(Feature.NOT_READY)

    def is_port(self):
        return self.has(Feature.PORT)

    def is_standalone(self):
        return self.has(Feature.STANDALONE)

    def is_port_clock(self):
        return self.has(Feature.PORT_CLOCK)

    def is_clock(self):
        return self.has(Feature.CLOCK)

    def is_fabric_clkbuf(self):
        return self.has(Feature.FABRIC_CLKBUF)

    def is_gearbox_clock(self):
        return self.has(Feature.GEARBOX_CLOCK)

    def is_any_inputs(self):
        return self.has(Feature.ANY_INPUTS)

    def is_any_outputs(self):
        return self.has(Feature.ANY_OUTPUTS)

    def is_optional_input(self):
        return self.has(Feature.OPTIONAL_INPUT)

    def is_optional_output(self):
        return self.has(Feature.OPTIONAL_OUTPUT)

    def is_lower_fast_clock_priority(self):
        return self.has(Feature.LOWER_FAST_CLOCK_PRIORITY)

    def is_in_dir(self):
        return self.has(Feature.IN_DIR)

    def is_out_dir(self):
        return not self.has(Feature.IN_DIR)

    def is_core_clock_of(self, port, source_type):
        """
        Checks whether the port is the core clock for a clock coming from
        the given primitive type
        """
        if not self.core_clock or port != self.core_clock:
            return False
        return not self.core_clock_sources or \
            source_type in self.core_clock_sources

    def is_not_core(self, port):
        return self.output_traits.get(port, "") == "NOT_CORE"


def split_trait(port):
    """
    Splits "<port>:<trait>" into (port, trait)
    """
    assert port, port
    if ":" in port:
        port, trait = port.split(":", maxsplit=1)
        assert port and trait, (port, trait)
        return port, trait
    return port, ""


# =============================================================================

# FIXME: Move to eg. a JSON file
SUPPORTED_PRIMITIVES = {
    "genesis3": [

        # Port primitives, directly connected to the pin
        PrimitiveDescriptor(
            "I_BUF",
            Feature.PORT | Feature.IN_DIR,
            inputs=["I"],
            outputs=["O"],
            outtrace="O",
            data_signal="O",
        ),
        PrimitiveDescriptor(
            "I_BUF_DS",
            Feature.PORT | Feature.IN_DIR,
            inputs=["I_P", "I_N"],
            outputs=["O"],
            outtrace="O",
            data_signal="O",
            properties={"SECONDARY_PIN_PORT": "I_N"},
        ),
        PrimitiveDescriptor(
            "O_BUF",
            Feature.PORT,
            inputs=["I"],
            outputs=["O"],
            outtrace="I",
            data_signal="I",
        ),
        PrimitiveDescriptor(
            "O_BUFT",
            Feature.PORT,
            inputs=["I"],
            outputs=["O"],
            outtrace="I",
            data_signal="I",
        ),
        PrimitiveDescriptor(
            "O_BUF_DS",
            Feature.PORT,
            inputs=["I"],
            outputs=["O_P", "O_N"],
            outtrace="I",
            data_signal="I",
            properties={"SECONDARY_PIN_PORT": "O_N"},
        ),
        PrimitiveDescriptor(
            "O_BUFT_DS",
            Feature.PORT,
            inputs=["I"],
            outputs=["O_P", "O_N"],
            outtrace="I",
            data_signal="I",
            properties={"SECONDARY_PIN_PORT": "O_N"},
        ),

        # Input direction
        PrimitiveDescriptor(
            "CLK_BUF",
            Feature.PORT_CLOCK | Feature.CLOCK | Feature.GEARBOX_CLOCK |
            Feature.IN_DIR,
            inputs=["I"],
            outputs=["O"],
            intrace="I",
            outtrace="O",
        ),
        PrimitiveDescriptor(
            "I_DELAY",
            Feature.IN_DIR | Feature.LOWER_FAST_CLOCK_PRIORITY,
            inputs=["I", "CLK_IN"],
            outputs=["O"],
            intrace="I",
            outtrace="O",
            fast_clock="CLK_IN",
            core_clock="CLK_IN",
            data_signal="O",
        ),
        PrimitiveDescriptor(
            "I_DDR",
            Feature.IN_DIR,
            inputs=["D", "C"],
            intrace="D",
            fast_clock="C",
            data_signal="Q",
            properties={"PIN_MODE": "DDR"},
        ),
        PrimitiveDescriptor(
            "I_SERDES",
            Feature.IN_DIR | Feature.OPTIONAL_OUTPUT,
            inputs=["D", "CLK_IN", "PLL_CLK"],
            outputs=["CLK_OUT"],
            intrace="D",
            fast_clock="PLL_CLK",
            core_clock="CLK_IN",
            data_signal="Q",
            properties={
                "MUST_HAVE_PARAMS": "WIDTH",
                "DEFINE_DATA_WIDTH_FROM_PARAMS": "WIDTH",
                "CLK_OUT_PORT": "CLK_OUT",
                "PIN_MODE": "RATE",
            },
        ),
        PrimitiveDescriptor(
            "BOOT_CLOCK",
            Feature.CLOCK | Feature.STANDALONE | Feature.IN_DIR,
            outputs=["O"],
            outtrace="O",
        ),
        PrimitiveDescriptor(
            "PLL",
            Feature.CLOCK | Feature.GEARBOX_CLOCK | Feature.ANY_OUTPUTS |
            Feature.IN_DIR,
            inputs=["CLK_IN"],
            outputs=[
                "CLK_OUT", "CLK_OUT_DIV2", "CLK_OUT_DIV3", "CLK_OUT_DIV4",
                "FAST_CLK:NOT_CORE"
            ],
            intrace="CLK_IN",
        ),

        # Output direction
        PrimitiveDescriptor(
            "O_DELAY",
            Feature.LOWER_FAST_CLOCK_PRIORITY,
            inputs=["I", "CLK_IN"],
            outputs=["O"],
            intrace="O",
            outtrace="I",
            fast_clock="CLK_IN",
            core_clock="CLK_IN",
            data_signal="I",
        ),
        PrimitiveDescriptor(
            "O_DDR",
            Feature.NULL,
            inputs=["C"],
            outputs=["Q"],
            intrace="Q",
            core_clock="C",
            data_signal="D",
            properties={"PIN_MODE": "DDR"},
        ),
        PrimitiveDescriptor(
            "O_SERDES",
            Feature.NULL,
            inputs=["CLK_IN", "PLL_CLK"],
            outputs=["Q"],
            intrace="Q",
            fast_clock="PLL_CLK",
            core_clock="CLK_IN",
            data_signal="D",
            properties={
                "MUST_HAVE_PARAMS": "WIDTH",
                "DEFINE_DATA_WIDTH_FROM_PARAMS": "WIDTH",
                "PIN_MODE": "RATE",
            },
        ),
        PrimitiveDescriptor(
            "O_SERDES_CLK",
            Feature.NULL,
            inputs=["PLL_CLK"],
            outputs=["OUTPUT_CLK"],
            intrace="OUTPUT_CLK",
            fast_clock="PLL_CLK",
            properties={"PIN_MODE": "RATE"},
        ),

        # Fabric clock buffer (fabric -> gearbox -> fabric)
        PrimitiveDescriptor(
            "FCLK_BUF",
            Feature.FABRIC_CLKBUF | Feature.IN_DIR,
            inputs=["I"],
            outputs=["O"],
            intrace="I",
            outtrace="O",
        ),
    ]
}

# Pairs of (source, destination) primitive types, traced in this order
TRACE_ORDER = {
    "genesis3": (
        [(src, "CLK_BUF") for src in ("I_BUF", "I_BUF_DS")] +
        [(src, "PLL") for src in ("CLK_BUF", "BOOT_CLOCK")] + [
            (src, dst)
            for src in ("I_BUF", "I_BUF_DS", "I_DELAY")
            for dst in ("I_DELAY", "I_DDR", "I_SERDES") if src != dst
        ] + [
            (src, dst)
            for src in ("O_BUF", "O_BUFT", "O_BUF_DS", "O_BUFT_DS", "O_DELAY")
            for dst in ("O_DELAY", "O_DDR", "O_SERDES") if src != dst
        ] + [
            (src, "O_SERDES_CLK")
            for src in ("O_BUF", "O_BUFT", "O_BUF_DS", "O_BUFT_DS")
        ]
    )
}

# =============================================================================


class ControlRule(IntFlag):
    NULL = 0
    AB = 1 << 0
    SHARED_HALF_BANK = 1 << 1


class ControlSignalPrimitive:
    """
    A primitive port that drives (or is driven by) a generic control signal.
    When "error" is False a conflicting net is skipped instead of failing.
    """

    def __init__(self, name, port, error=True):
        assert name and port, (name, port)
        self.name = name
        self.port = port
        self.error = error


class ControlSignal:
    """
    A generic fabric control signal. Direction "in" means the signal goes
    from the fabric into the I/O ring.
    """

    def __init__(self, name, direction, rules, primitives):
        assert name, name
        assert direction in ("in", "out"), direction
        assert len(primitives), name
        self.name = name
        self.direction = direction
        self.rules = ControlRule(rules)
        self.primitives = primitives

    def is_ab(self):
        return (self.rules & ControlRule.AB) != ControlRule.NULL

    def is_shared_half_bank(self):
        return (self.rules & ControlRule.SHARED_HALF_BANK) != ControlRule.NULL


CSP = ControlSignalPrimitive

CONTROL_SIGNALS = {
    "genesis3": [
        ControlSignal(
            "f2g_in_en", "in", ControlRule.AB, [
                CSP("I_SERDES", "EN"),
                CSP("I_DDR", "E"),
                CSP("O_SERDES", "OE_IN"),
                CSP("I_BUF", "EN", False),
                CSP("I_BUF_DS", "EN", False),
            ]
        ),
        ControlSignal(
            "f2g_tx_oe", "in", ControlRule.AB, [
                CSP("O_DDR", "E"),
                CSP("O_BUFT", "T", False),
                CSP("O_BUFT_DS", "T", False),
            ]
        ),
        ControlSignal(
            "f2g_trx_dly_ld", "in", ControlRule.SHARED_HALF_BANK, [
                CSP("I_DELAY", "DLY_LOAD"),
                CSP("O_DELAY", "DLY_LOAD"),
            ]
        ),
        ControlSignal(
            "f2g_trx_dly_adj", "in", ControlRule.SHARED_HALF_BANK, [
                CSP("I_DELAY", "DLY_ADJ"),
                CSP("O_DELAY", "DLY_ADJ"),
            ]
        ),
        ControlSignal(
            "f2g_trx_dly_inc", "in", ControlRule.SHARED_HALF_BANK, [
                CSP("I_DELAY", "DLY_INCDEC"),
                CSP("O_DELAY", "DLY_INCDEC"),
            ]
        ),
        ControlSignal(
            "g2f_trx_dly_tap", "out", ControlRule.SHARED_HALF_BANK, [
                CSP("I_DELAY", "DLY_TAP_VALUE"),
                CSP("O_DELAY", "DLY_TAP_VALUE"),
            ]
        ),
        ControlSignal(
            "f2g_trx_reset_n", "in", ControlRule.AB, [
                CSP("I_SERDES", "RST"),
                CSP("O_SERDES", "RST"),
                CSP("I_DDR", "R"),
                CSP("O_DDR", "R"),
            ]
        ),
        ControlSignal(
            "g2f_rx_dvalid", "out", ControlRule.AB, [
                CSP("I_SERDES", "DATA_VALID"),
            ]
        ),
        ControlSignal(
            "f2g_rx_bitslip_adj", "in", ControlRule.SHARED_HALF_BANK, [
                CSP("I_SERDES", "BITSLIP_ADJ"),
            ]
        ),
        ControlSignal(
            "g2f_rx_dpa_lock", "out", ControlRule.SHARED_HALF_BANK, [
                CSP("I_SERDES", "DPA_LOCK"),
            ]
        ),
        ControlSignal(
            "g2f_rx_dpa_error", "out", ControlRule.SHARED_HALF_BANK, [
                CSP("I_SERDES", "DPA_ERROR"),
            ]
        ),
        ControlSignal(
            "f2g_tx_dvalid", "in", ControlRule.AB, [
                CSP("O_SERDES", "DATA_VALID"),
            ]
        ),
        ControlSignal(
            "f2g_tx_clk_en", "in", ControlRule.AB, [
                CSP("O_SERDES_CLK", "CLK_EN"),
            ]
        ),
    ]
}
