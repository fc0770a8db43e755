"""Collapses short outlet flowlines into their upstream neighbor"""

import logging
import warnings

from hydrofabric_collapse.collapse.network import (
    FlowlineLookup,
    NetworkIndex,
    copy_lookup,
    has_downstream,
    is_processed,
)
from hydrofabric_collapse.exceptions import ConfigurationWarning, StuckLoopError
from hydrofabric_collapse.schemas.collapse import TERMINAL_COMID

logger = logging.getLogger(__name__)

MAX_OUTLET_ITERATIONS = 100


def _short_outlets(flines: FlowlineLookup, thresh: float) -> list[int]:
    """No toCOMID, too short, and not combined yet"""
    return [
        comid
        for comid, row in flines.items()
        if not has_downstream(row["toCOMID"])
        and row["LENGTHKM"] < thresh
        and row["joined_fromCOMID"] is None
    ]


def collapse_outlets(
    flines: FlowlineLookup, thresh: float, index: NetworkIndex, warn: bool = True
) -> tuple[FlowlineLookup, list[int]]:
    """Collapses outlet flowlines shorter than the threshold into their upstream flowline.

    Each iteration merges every short outlet into the upstream flowline with the largest original
    drainage area (then length, then COMID). The absorber becomes the new outlet and is checked
    again on the next iteration. Short outlets with nothing upstream are marked with
    joined_fromCOMID = -9999 and keep their length.

    Parameters
    ----------
    flines : FlowlineLookup
        Unmodified flowlines
    thresh : float
        Length threshold (km). Outlets strictly shorter than this are eliminated
    index : NetworkIndex
        The original network adjacency and attributes
    warn : bool, optional
        Issue a ConfigurationWarning when called on already collapsed flowlines, by default True

    Returns
    -------
    tuple[FlowlineLookup, list[int]]
        The updated flowlines and the COMIDs removed, in removal order

    Raises
    ------
    StuckLoopError
        If the set of short outlets stops shrinking or the loop runs past 100 iterations
    """
    if is_processed(flines):
        if warn:
            msg = (
                "collapse_outlets must be used with unmodified flowlines. "
                "Returning unmodified flowlines from collapse_outlets."
            )
            logger.warning(msg)
            warnings.warn(msg, ConfigurationWarning, stacklevel=2)
        return flines, []

    flines = copy_lookup(flines)
    for row in flines.values():
        row["joined_fromCOMID"] = None

    short_outlets_tracker: list[int] = []
    previous: set[int] | None = None
    count = 0

    short_outlets = _short_outlets(flines, thresh)
    while short_outlets:
        if previous is not None and set(short_outlets) <= previous:
            raise StuckLoopError(f"Stuck in short outlet loop at COMIDs {sorted(short_outlets)}")
        previous = set(short_outlets)

        absorbers: dict[int, int] = {}
        for comid in short_outlets:
            upstream = index.upstream[comid]
            if not upstream:
                # Nothing upstream to merge into
                flines[comid]["joined_fromCOMID"] = TERMINAL_COMID
                continue
            absorbers[comid] = index.select_absorber(upstream)

        for comid, absorber in absorbers.items():
            row = flines[comid]
            absorber_row = flines[absorber]
            absorber_row["LENGTHKM"] += row["LENGTHKM"]
            absorber_row["toCOMID"] = row["toCOMID"]
            row["LENGTHKM"] = 0.0

        # Anything already joined to an eliminated outlet follows it to the absorber
        for row in flines.values():
            if row["joined_fromCOMID"] in absorbers:
                row["joined_fromCOMID"] = absorbers[row["joined_fromCOMID"]]

        for comid, absorber in absorbers.items():
            flines[comid]["joined_fromCOMID"] = absorber
            short_outlets_tracker.append(comid)

        count += 1
        if count > MAX_OUTLET_ITERATIONS:
            raise StuckLoopError("Stuck in short outlet loop")
        short_outlets = _short_outlets(flines, thresh)

    logger.info(f"collapse_outlets: merged {len(short_outlets_tracker)} short outlets upstream")
    return flines, short_outlets_tracker
