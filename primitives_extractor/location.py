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
Physical pin location codec.

A location looks like "HP_3_12_6P" or "HR_2_CC_38_19P":

  H<P|R>_<bank>_[CC_]<index>_<pair index><P|N>

The pair index must be half of the pin index and the polarity letter must
match the index parity (even is P, odd is N).
"""
import re

from collections import namedtuple
from enum import Enum

# =============================================================================

LOCATION_RE = re.compile(
    r"H(?P<type>[PR])_(?P<bank>[1-6])_(?P<clock>CC_|)"
    r"(?P<index>[0-9]+)_(?P<pair>[0-9]+)(?P<polarity>[PN])"
)

# Number of pins in a bank
BANK_SIZE = 40


class LocationStatus(Enum):
    UNKNOWN = 0
    GOOD = 1
    BAD = 2
    SKIP = 3


ParsedLocation = namedtuple(
    "ParsedLocation", "location type bank is_clock index status failure_reason"
)

# =============================================================================


def parse_location(location):
    """
    Decodes a location string into a ParsedLocation. Never raises.
    """

    def bad(reason, type="", bank="", is_clock=False, index=0):
        return ParsedLocation(
            location=location,
            type=type,
            bank=bank,
            is_clock=is_clock,
            index=index,
            status=LocationStatus.BAD,
            failure_reason=reason
        )

    if not location:
        return ParsedLocation(
            location="",
            type="",
            bank="",
            is_clock=False,
            index=0,
            status=LocationStatus.SKIP,
            failure_reason="Location is not assigned"
        )

    match = LOCATION_RE.fullmatch(location)
    if match is None:
        return bad("Location {} does not meet regex".format(location))

    type = match.group("type")
    bank = match.group("bank")
    is_clock = match.group("clock") == "CC_"
    index = int(match.group("index"))

    if index >= BANK_SIZE:
        return bad(
            "Location {} is out of index range".format(location), type, bank,
            is_clock, index
        )

    if index // 2 != int(match.group("pair")):
        return bad(
            "Location {} pair index is invalid".format(location), type, bank,
            is_clock, index
        )

    polarity = "P" if (index % 2) == 0 else "N"
    if match.group("polarity") != polarity:
        return bad(
            "Location {} P/N is invalid".format(location), type, bank,
            is_clock, index
        )

    return ParsedLocation(
        location=location,
        type=type,
        bank=bank,
        is_clock=is_clock,
        index=index,
        status=LocationStatus.GOOD,
        failure_reason=""
    )


def remap_half_first(parsed):
    """
    Returns the anchor location of the half bank the location belongs to
    """
    assert parsed.status == LocationStatus.GOOD, parsed
    if parsed.index < (BANK_SIZE // 2):
        return "H{}_{}_0_0P".format(parsed.type, parsed.bank)
    return "H{}_{}_{}_{}P".format(
        parsed.type, parsed.bank, BANK_SIZE // 2, BANK_SIZE // 4
    )


def pair_location(parsed):
    """
    Returns the P (A) location of the differential pair a location belongs
    to. An N location maps to its P partner.
    """
    assert parsed.status == LocationStatus.GOOD, parsed
    if parsed.index % 2 == 0:
        return parsed.location
    return "H{}_{}{}_{}_{}P".format(
        parsed.type, parsed.bank, "_CC" if parsed.is_clock else "",
        parsed.index - 1, parsed.index // 2
    )


def pair_key(parsed):
    """
    Key identifying the differential pair of a location
    """
    assert parsed.status == LocationStatus.GOOD, parsed
    return "{}_{}_{}".format(parsed.type, parsed.bank, parsed.index // 2)
