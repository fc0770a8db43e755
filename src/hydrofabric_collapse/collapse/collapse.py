"""Collapses short and non-confluence flowlines of an NHDPlus style network"""

import logging

import pandas as pd

from hydrofabric_collapse.collapse.cleanup import repair_joined_pointers
from hydrofabric_collapse.collapse.network import (
    FlowlineLookup,
    NetworkIndex,
    prepare_flowlines,
    to_dataframe,
    to_lookup,
    validate_network,
)
from hydrofabric_collapse.collapse.outlets import collapse_outlets
from hydrofabric_collapse.collapse.reconcile import (
    build_removal_table,
    confluence_reroute_set,
    headwater_selector,
    mainstem_reroute_set,
    mainstem_top_selector,
    reconcile_downstream,
    reconcile_removed_flowlines,
)
from hydrofabric_collapse.schemas.collapse import JoinCategory

logger = logging.getLogger(__name__)


def _join_category(
    flines: FlowlineLookup,
    short_outlets: list[int],
    removed_mainstem: list[int],
    removed_confluence: list[int],
    headwaters: list[int],
) -> dict[int, str | None]:
    """Labels each flowline with the first rule, in pipeline order, that removed it"""
    outlet_set = set(short_outlets)
    mainstem_set = set(removed_mainstem)
    confluence_set = set(removed_confluence)
    headwater_set = set(headwaters)

    categories: dict[int, str | None] = {}
    for comid, row in flines.items():
        if comid in outlet_set:
            categories[comid] = JoinCategory.OUTLET.value
        elif comid in mainstem_set:
            categories[comid] = JoinCategory.MAINSTEM.value
        elif comid in confluence_set:
            categories[comid] = JoinCategory.CONFLUENCE.value
        elif comid in headwater_set:
            categories[comid] = JoinCategory.HEADWATER.value
        else:
            categories[comid] = row.get("join_category")
    return categories


def collapse_flowlines(
    flines: pd.DataFrame,
    thresh: float,
    add_category: bool = False,
    mainstem_thresh: float | None = None,
    warn: bool = True,
) -> pd.DataFrame:
    """Refactors a flowline network, eliminating short and non-confluence flowlines.

    Stages run in order: short outlets, short headwaters, short mainstem tops (only with a
    mainstem_thresh), short inter-confluence mainstems, short confluence flowlines, and a final
    pointer repair. Removed flowlines stay in the output with LENGTHKM == 0 and a joined_toCOMID or
    joined_fromCOMID naming the flowline that holds their length.

    Parameters
    ----------
    flines : pd.DataFrame
        Flowlines with COMID, toCOMID, LENGTHKM, and TotDASqKM columns
    thresh : float
        Length threshold (km). Flowlines shorter than this are eliminated
    add_category : bool, optional
        Add a join_category column naming the rule that removed each flowline, by default False
    mainstem_thresh : float | None, optional
        Threshold (km) for combining inter-confluence mainstems. None uses the longest flowline and
        skips the mainstem top stage, by default None
    warn : bool, optional
        Surface non-fatal warnings, by default True

    Returns
    -------
    pd.DataFrame
        The collapsed flowlines with merged lengths and updated toCOMIDs

    Raises
    ------
    ValueError
        If a threshold is not positive or the flowlines are malformed
    NetworkCycleError
        If the toCOMID network is not acyclic
    StuckLoopError
        If provenance pointers form a cycle
    """
    if thresh <= 0:
        raise ValueError("thresh must be positive")
    if mainstem_thresh is not None and mainstem_thresh <= 0:
        raise ValueError("mainstem_thresh must be None or positive")

    flines = prepare_flowlines(flines)
    validate_network(flines)
    columns = list(flines.columns)

    # very large thresh
    mainstem_thresh_use = mainstem_thresh if mainstem_thresh is not None else float(flines["LENGTHKM"].max())

    lookup = to_lookup(flines)
    index = NetworkIndex.from_lookup(lookup)

    # Short outlets go first so the downstream logic below does not break them
    lookup, short_outlets_tracker = collapse_outlets(lookup, thresh, index, warn)

    lookup, headwaters_tracker = reconcile_downstream(
        lookup, headwater_selector(thresh), remove_problem_headwaters=True
    )

    mainstem_top_tracker: list[int] = []
    if mainstem_thresh is not None:
        lookup, mainstem_top_tracker = reconcile_downstream(
            lookup, mainstem_top_selector(mainstem_thresh_use), remove_problem_headwaters=False
        )

    reroute_mainstem_set = mainstem_reroute_set(lookup, mainstem_thresh_use)
    removed_mainstem = build_removal_table(lookup, reroute_mainstem_set, index)
    lookup = reconcile_removed_flowlines(lookup, reroute_mainstem_set, removed_mainstem)

    reroute_confluence_set = confluence_reroute_set(lookup, thresh)
    removed_confluence = build_removal_table(lookup, reroute_confluence_set, index)
    lookup = reconcile_removed_flowlines(lookup, reroute_confluence_set, removed_confluence)

    lookup = repair_joined_pointers(lookup)

    logger.info(
        f"collapse_flowlines: removed {len(short_outlets_tracker)} outlets, {len(headwaters_tracker)} headwaters, "
        f"{len(mainstem_top_tracker) + len(removed_mainstem)} mainstem and {len(removed_confluence)} confluence flowlines"
    )

    for col in ["joined_toCOMID", "joined_fromCOMID"]:
        if col not in columns:
            columns.append(col)

    if add_category:
        categories = _join_category(
            lookup,
            short_outlets_tracker,
            list(removed_mainstem) + mainstem_top_tracker,
            list(removed_confluence),
            headwaters_tracker,
        )
        for comid, row in lookup.items():
            row["join_category"] = categories[comid]
        if "join_category" not in columns:
            columns.append("join_category")

    return to_dataframe(lookup, columns)
