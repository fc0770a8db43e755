"""Groups collapsed flowlines into the features that survive the collapse"""

import logging

import pandas as pd
import polars as pl

from hydrofabric_collapse.collapse.network import (
    has_downstream,
    prepare_flowlines,
    resolve_live_comid,
    to_lookup,
)

logger = logging.getLogger(__name__)


def reconcile_collapsed_flowlines(flines: pd.DataFrame) -> pd.DataFrame:
    """Builds the reconciled network from the output of collapse_flowlines.

    Every flowline becomes a member of the live flowline that absorbed it. Each group gets a new
    sequential ID ordered by the surviving COMID. Geometry merging of members is left to the caller.

    Parameters
    ----------
    flines : pd.DataFrame
        Collapsed flowlines with joined_toCOMID and joined_fromCOMID columns

    Returns
    -------
    pd.DataFrame
        One row per surviving feature with columns:
        - ID: new identifier
        - toID: ID of the downstream feature, null at outlets
        - LENGTHKM: merged length
        - TotDASqKM: largest drainage area among members
        - member_COMID: sorted COMIDs merged into the feature

    Raises
    ------
    ValueError
        If the flowlines were not collapsed
    """
    if "joined_toCOMID" not in flines.columns or "joined_fromCOMID" not in flines.columns:
        raise ValueError("reconcile_collapsed_flowlines requires the output of collapse_flowlines")

    lookup = to_lookup(prepare_flowlines(flines))
    becomes = {comid: resolve_live_comid(lookup, comid) for comid in lookup}

    members = pl.DataFrame(
        {
            "COMID": list(lookup),
            "becomes": [becomes[comid] for comid in lookup],
            "LENGTHKM": [row["LENGTHKM"] for row in lookup.values()],
            "TotDASqKM": [row["TotDASqKM"] for row in lookup.values()],
        },
        schema={"COMID": pl.Int64, "becomes": pl.Int64, "LENGTHKM": pl.Float64, "TotDASqKM": pl.Float64},
    )

    groups = (
        members.group_by("becomes")
        .agg(
            pl.col("LENGTHKM").max(),
            pl.col("TotDASqKM").max(),
            pl.col("COMID").sort().alias("member_COMID"),
        )
        .sort("becomes")
        .with_row_index("ID", offset=1)
        .with_columns(pl.col("ID").cast(pl.Int64))
    )

    id_lookup: dict[int, int] = dict(zip(groups["becomes"].to_list(), groups["ID"].to_list(), strict=True))

    records = []
    for group in groups.to_dicts():
        survivor = group["becomes"]
        to_comid = lookup[survivor]["toCOMID"]
        to_id = None
        if has_downstream(to_comid):
            downstream = becomes[to_comid]
            if downstream != survivor:
                to_id = id_lookup[downstream]
        records.append(
            {
                "ID": group["ID"],
                "toID": to_id,
                "LENGTHKM": group["LENGTHKM"],
                "TotDASqKM": group["TotDASqKM"],
                "member_COMID": list(group["member_COMID"]),
            }
        )

    reconciled = pd.DataFrame.from_records(
        records, columns=["ID", "toID", "LENGTHKM", "TotDASqKM", "member_COMID"]
    )
    reconciled["ID"] = reconciled["ID"].astype("int64")
    reconciled["toID"] = reconciled["toID"].astype("Int64")
    logger.info(f"reconcile_collapsed_flowlines: {len(lookup)} flowlines grouped into {len(reconciled)} features")
    return reconciled
