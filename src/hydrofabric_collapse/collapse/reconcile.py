"""Downstream reconciliation and rerouting around removed flowlines"""

import logging
from collections import defaultdict
from collections.abc import Callable

from hydrofabric_collapse.collapse.network import (
    FlowlineLookup,
    NetworkIndex,
    copy_lookup,
    get_ds_num_upstream,
    get_dsLENGTHKM,
    get_num_upstream,
    has_downstream,
    is_removed,
    resolve_live_comid,
)
from hydrofabric_collapse.exceptions import StuckLoopError
from hydrofabric_collapse.schemas.collapse import TERMINAL_COMID

logger = logging.getLogger(__name__)

RemoveFun = Callable[[FlowlineLookup], list[int]]


def headwater_selector(thresh: float) -> RemoveFun:
    """Selects short headwaters that have not been combined yet and still flow somewhere"""

    def remove_headwaters(flines: FlowlineLookup) -> list[int]:
        has_inflow = {row["toCOMID"] for row in flines.values() if has_downstream(row["toCOMID"])}
        return [
            comid
            for comid, row in flines.items()
            if comid not in has_inflow
            and row["LENGTHKM"] < thresh
            and row["joined_fromCOMID"] is None
            and row["joined_toCOMID"] is None
            and has_downstream(row["toCOMID"])
        ]

    return remove_headwaters


def mainstem_top_selector(mainstem_thresh: float) -> RemoveFun:
    """Selects short flowlines just below a confluence whose downstream neighbor is not a confluence"""

    def remove_mainstem_top(flines: FlowlineLookup) -> list[int]:
        num_upstream = get_num_upstream(flines)
        ds_num_upstream = get_ds_num_upstream(flines)
        return [
            comid
            for comid, row in flines.items()
            if num_upstream[comid] > 1
            and ds_num_upstream[comid] == 1
            and row["LENGTHKM"] < mainstem_thresh
            and has_downstream(row["toCOMID"])
        ]

    return remove_mainstem_top


def _first_receiver(
    comid: int, targets: dict[int, int], moving: set[int], resolved: dict[int, int]
) -> int:
    """Follow pre-pass toCOMIDs past flowlines removed in the same pass"""
    visited = {comid}
    receiver = targets[comid]
    while receiver in moving:
        if receiver in resolved:
            return resolved[receiver]
        if receiver in visited:
            raise StuckLoopError(f"toCOMID values starting at {comid} form a cycle")
        visited.add(receiver)
        receiver = targets[receiver]
    return receiver


def _remove_downstream(
    flines: FlowlineLookup, eligible: list[int], remove_problem_headwaters: bool
) -> list[int]:
    """Applies one pass of downstream merges in place and returns the COMIDs removed"""
    targets = {comid: flines[comid]["toCOMID"] for comid in eligible}
    eligible_set = set(eligible)
    moving = set(eligible)

    # Eligible flowlines whose neighbor was removed by an earlier stage
    receivers: dict[int, int] = {}
    for comid in eligible:
        receiver = targets[comid]
        if not is_removed(flines[receiver]):
            continue
        moving.discard(comid)
        if not remove_problem_headwaters:
            continue
        live = resolve_live_comid(flines, receiver)
        if live == comid or live in eligible_set:
            flines[comid]["joined_toCOMID"] = TERMINAL_COMID
            continue
        moving.add(comid)
        receivers[comid] = live

    for comid in eligible:
        if comid in moving and comid not in receivers:
            receivers[comid] = _first_receiver(comid, targets, moving, receivers)

    lengths = {comid: flines[comid]["LENGTHKM"] for comid in moving}
    removed = [comid for comid in eligible if comid in moving]
    for comid in removed:
        flines[receivers[comid]]["LENGTHKM"] += lengths[comid]
    for comid in removed:
        row = flines[comid]
        row["LENGTHKM"] = 0.0
        row["joined_toCOMID"] = targets[comid]
        row["toCOMID"] = None
    return removed


def reconcile_downstream(
    flines: FlowlineLookup, remove_fun: RemoveFun, remove_problem_headwaters: bool = False
) -> tuple[FlowlineLookup, list[int]]:
    """Merges the flowlines selected by remove_fun into their downstream neighbor until none remain.

    Every selected flowline is zeroed, its length goes to its downstream neighbor, and it records the
    neighbor in joined_toCOMID. Within a pass, selected flowlines that flow into each other pass their
    length on to the first unselected flowline downstream; the joined_toCOMID chain between them is
    collapsed later by repair_joined_pointers.

    Parameters
    ----------
    flines : FlowlineLookup
        The flowline table
    remove_fun : RemoveFun
        Returns the COMIDs eligible for removal in the current state of the table
    remove_problem_headwaters : bool, optional
        Merge flowlines whose downstream neighbor was already removed into the live flowline that
        absorbed it. When False these flowlines are left in place. By default False

    Returns
    -------
    tuple[FlowlineLookup, list[int]]
        The updated flowlines and the COMIDs removed, in removal order

    Raises
    ------
    StuckLoopError
        If flowlines selected in the same pass flow into each other in a cycle
    """
    flines = copy_lookup(flines)
    for row in flines.values():
        row.setdefault("joined_toCOMID", None)
        row.setdefault("joined_fromCOMID", None)

    def eligible_flowlines() -> list[int]:
        # removed flowlines lose their toCOMID, so each productive pass shrinks this set
        return [comid for comid in remove_fun(flines) if has_downstream(flines[comid]["toCOMID"])]

    removed_tracker: list[int] = []
    eligible = eligible_flowlines()
    while eligible:
        removed = _remove_downstream(flines, eligible, remove_problem_headwaters)
        if not removed:
            break
        removed_tracker.extend(removed)
        eligible = eligible_flowlines()

    logger.info(f"reconcile_downstream: merged {len(removed_tracker)} flowlines downstream")
    return flines, removed_tracker


def mainstem_reroute_set(flines: FlowlineLookup, mainstem_thresh: float) -> list[int]:
    """Flowlines whose short, non-confluence downstream neighbor should be skipped"""
    ds_length = get_dsLENGTHKM(flines)
    ds_num_upstream = get_ds_num_upstream(flines)
    return [
        comid
        for comid, row in flines.items()
        if ds_length[comid] > 0  # is still in scope
        and row["joined_toCOMID"] is None  # wasn't already collapsed as a headwater
        and ds_num_upstream[comid] == 1  # is not upstream of a confluence
        and ds_length[comid] < mainstem_thresh
    ]


def confluence_reroute_set(flines: FlowlineLookup, thresh: float) -> list[int]:
    """Flowlines whose short downstream neighbor is a confluence"""
    ds_length = get_dsLENGTHKM(flines)
    ds_num_upstream = get_ds_num_upstream(flines)
    return [comid for comid in flines if 0 < ds_length[comid] < thresh and ds_num_upstream[comid] > 1]


def build_removal_table(flines: FlowlineLookup, reroute_set: list[int], index: NetworkIndex) -> dict[int, int]:
    """Maps each skipped downstream neighbor (removed_COMID) to the flowline absorbing it.

    When several rerouted flowlines skip the same neighbor the one with the largest original
    drainage area, then length, then COMID absorbs it.

    Parameters
    ----------
    flines : FlowlineLookup
        The flowline table
    reroute_set : list[int]
        Flowlines whose downstream neighbor is skipped
    index : NetworkIndex
        The original network attributes used for the tie-break

    Returns
    -------
    dict[int, int]
        removed_COMID -> joined_fromCOMID
    """
    candidates: dict[int, list[int]] = defaultdict(list)
    for comid in reroute_set:
        candidates[flines[comid]["toCOMID"]].append(comid)
    return {removed: index.select_absorber(froms) for removed, froms in candidates.items()}


def reconcile_removed_flowlines(
    flines: FlowlineLookup, reroute_set: list[int], removed: dict[int, int]
) -> FlowlineLookup:
    """Reroutes flowlines around removed downstream neighbors.

    Rerouted flowlines point past the removed neighbor to the first flowline downstream of it that
    is not removed in the same pass. Each removed length is credited once, to its absorber, or to the
    absorber's own absorber when that one is removed too.

    Parameters
    ----------
    flines : FlowlineLookup
        The flowline table
    reroute_set : list[int]
        Flowlines whose downstream neighbor is skipped
    removed : dict[int, int]
        removed_COMID -> joined_fromCOMID, see build_removal_table

    Returns
    -------
    dict[int, dict[str, Any]]
        The updated flowlines
    """
    flines = copy_lookup(flines)
    if not removed:
        return flines

    downstream = {comid: flines[comid]["toCOMID"] for comid in removed}

    def next_kept(comid: int) -> int | None:
        visited: set[int] = set()
        while comid in removed:
            if comid in visited:
                raise StuckLoopError(f"Removed flowlines downstream of {comid} form a cycle")
            visited.add(comid)
            comid = downstream[comid]  # type: ignore[assignment]
        return comid

    def final_absorber(comid: int) -> int:
        visited: set[int] = set()
        absorber = removed[comid]
        while absorber in removed:
            if absorber in visited:
                raise StuckLoopError(f"Absorbers of removed flowline {comid} form a cycle")
            visited.add(absorber)
            absorber = removed[absorber]
        return absorber

    lengths = {comid: flines[comid]["LENGTHKM"] for comid in removed}
    for comid in removed:
        flines[final_absorber(comid)]["LENGTHKM"] += lengths[comid]

    rerouted = [comid for comid in reroute_set if comid not in removed]
    stragglers = [
        comid
        for comid, row in flines.items()
        if row["toCOMID"] in removed and comid not in removed and comid not in reroute_set
    ]
    for comid in rerouted + stragglers:
        flines[comid]["toCOMID"] = next_kept(flines[comid]["toCOMID"])

    for comid, absorber in removed.items():
        row = flines[comid]
        row["LENGTHKM"] = 0.0
        row["toCOMID"] = None
        row["joined_fromCOMID"] = absorber

    logger.debug(f"reconcile_removed_flowlines: {len(removed)} removed, {len(stragglers)} extra reroutes")
    return flines
