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
Extracts I/O primitives from a Yosys JSON netlist, writes the JSON report
and, given the wrapped netlist, the SDC and clock pin XML constraints.
Exits with 0 when everything went fine and with -1 otherwise.
"""
import argparse
import json
import logging

from primitives_extractor.extractor import PrimitivesExtractor
from primitives_extractor.model import ExtractorContext, \
    DEFAULT_MAX_FABRIC_CLOCK_SLOT
from primitives_extractor.netlist import Design, NetlistError
from primitives_extractor.pcf import parse_simple_pcf, PcfError
from primitives_extractor.report import write_json
from primitives_extractor.sdc import write_sdc
from primitives_extractor.wrapped import WrappedNetlist

# =============================================================================


def main():

    # Parse arguments
    parser = argparse.ArgumentParser(
        description="Extracts I/O primitives and their clocking from a "
        "synthesized netlist"
    )

    parser.add_argument(
        "--netlist",
        required=True,
        type=str,
        help="Input design netlist (Yosys JSON)"
    )
    parser.add_argument(
        "--top",
        default=None,
        type=str,
        help="Top-level module name (def. the one marked as top)"
    )
    parser.add_argument(
        "--technology",
        default="genesis3",
        type=str,
        help="Primitive technology (def. \"genesis3\")"
    )
    parser.add_argument(
        "--pcf",
        default=None,
        type=str,
        help="PCF file with pin locations"
    )
    parser.add_argument(
        "--wrapped",
        default=None,
        type=str,
        help="Wrapped netlist JSON (required for SDC output)"
    )
    parser.add_argument(
        "--output-json",
        default=None,
        type=str,
        help="Output JSON report"
    )
    parser.add_argument(
        "--output-sdc",
        default=None,
        type=str,
        help="Output SDC constraints"
    )
    parser.add_argument(
        "--output-xml",
        default=None,
        type=str,
        help="Output clock pin constraints XML"
    )
    parser.add_argument(
        "--generation-order",
        type=str,
        choices=["inward", "outward"],
        default="inward",
        help="Instance generation order of output chains (def. \"inward\")"
    )
    parser.add_argument(
        "--max-fabric-clocks",
        type=int,
        default=DEFAULT_MAX_FABRIC_CLOCK_SLOT,
        help="Number of fabric clock slots (def. {})".format(
            DEFAULT_MAX_FABRIC_CLOCK_SLOT
        )
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Keep messages of failed trace attempts"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="WARNING",
        help="Log level (def. \"WARNING\")"
    )

    args = parser.parse_args()

    if (args.output_sdc is None) != (args.output_xml is None):
        parser.error("--output-sdc and --output-xml go together")
    if args.output_sdc is not None and args.wrapped is None:
        parser.error("--output-sdc requires --wrapped")
    if args.max_fabric_clocks <= 0:
        parser.error("--max-fabric-clocks must be positive")

    # Setup logging
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, args.log_level.upper()),
    )

    # Load the netlist
    logging.info("Loading netlist...")
    try:
        with open(args.netlist, "r") as fp:
            design = Design.from_yosys_json(json.load(fp), args.top)
    except NetlistError as ex:
        logging.critical("ERROR: {}".format(ex))
        exit(-1)

    logging.info("Top-level module: '{}'".format(design.top))

    context = ExtractorContext(
        technology=args.technology,
        debug=args.debug,
        max_fabric_clock_slot=args.max_fabric_clocks,
        generation_order=args.generation_order,
    )
    extractor = PrimitivesExtractor(args.technology, context)

    try:
        logging.info("Extracting primitives...")
        extractor.extract(design)

        # Pin locations
        if args.pcf is not None and extractor.summarized:
            logging.info("Assigning locations...")
            with open(args.pcf, "r") as fp:
                for constr in parse_simple_pcf(fp):
                    extractor.assign_location(
                        constr.net, constr.pad, constr.properties
                    )

            extractor.finalize_locations()
            for instance, reason in extractor.get_bad_locations():
                logging.warning(
                    "WARNING: {} {}: {}".format(
                        instance.module, instance.name, reason
                    )
                )

        # Constraints
        if args.output_sdc is not None and extractor.summarized:
            logging.info("Writing constraints...")
            wrapped = WrappedNetlist.load(args.wrapped)
            write_sdc(extractor, wrapped, args.output_sdc, args.output_xml)

    except PcfError as ex:
        logging.critical("ERROR: {}".format(ex))
        exit(-1)

    except PrimitivesExtractor.Exception as ex:
        logging.critical("ERROR: {}".format(ex))
        exit(-1)

    # Report
    if args.output_json is not None:
        logging.info("Writing report...")
        write_json(extractor, args.output_json)

    if not extractor.overall_status():
        logging.error("I/O analysis failed")
        exit(-1)

    exit(0)


if __name__ == "__main__":
    main()
