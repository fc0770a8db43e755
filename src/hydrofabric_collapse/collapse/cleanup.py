"""Final consistency repair of toCOMID and joined_* pointers"""

import logging

from hydrofabric_collapse.collapse.network import (
    FlowlineLookup,
    copy_lookup,
    has_downstream,
    has_pointer,
    is_removed,
    resolve_live_comid,
)

logger = logging.getLogger(__name__)


def repair_joined_pointers(flines: FlowlineLookup) -> FlowlineLookup:
    """Resolves chained merge pointers so every pointer lands on a live flowline.

    A removed flowline can point at another flowline that was removed by a later stage. Each
    joined_toCOMID / joined_fromCOMID is followed hop by hop (joined_toCOMID first when a removed
    flowline carries both) to the live flowline holding the merged length. toCOMID values that
    reference a removed flowline are replaced the same way, and removed flowlines lose their toCOMID.

    Parameters
    ----------
    flines : FlowlineLookup
        The flowline table after all collapse stages

    Returns
    -------
    FlowlineLookup
        The repaired flowlines, one row per COMID

    Raises
    ------
    StuckLoopError
        If a pointer chain revisits a flowline. The hop count is bounded by the number of flowlines
    """
    resolved = {comid: resolve_live_comid(flines, comid) for comid, row in flines.items() if is_removed(row)}

    repaired = copy_lookup(flines)
    updates = 0
    for comid, row in repaired.items():
        for col in ["joined_toCOMID", "joined_fromCOMID"]:
            if has_pointer(row.get(col)) and row[col] in resolved:
                row[col] = resolved[row[col]]
                updates += 1

        if comid in resolved:
            row["toCOMID"] = None
        elif has_downstream(row["toCOMID"]) and row["toCOMID"] in resolved:
            target = resolved[row["toCOMID"]]
            row["toCOMID"] = None if target == comid else target
            updates += 1

    logger.info(f"repair_joined_pointers: resolved {updates} pointers through removed flowlines")
    return repaired
