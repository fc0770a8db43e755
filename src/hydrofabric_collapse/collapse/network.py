"""A file for the network table, its adjacency indices, and shared graph metrics"""

import logging
from collections import defaultdict
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

import numpy as np
import pandas as pd
import rustworkx as rx

from hydrofabric_collapse.exceptions import NetworkCycleError, StuckLoopError
from hydrofabric_collapse.schemas.collapse import TERMINAL_COMID

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["COMID", "toCOMID", "LENGTHKM", "TotDASqKM"]
ID_COLUMNS = ["COMID", "toCOMID", "joined_toCOMID", "joined_fromCOMID"]

FlowlineLookup = dict[int, dict[str, Any]]


def has_downstream(to_comid: int | None) -> bool:
    """True when a toCOMID points at another flowline"""
    return to_comid is not None and to_comid != TERMINAL_COMID


def has_pointer(joined_comid: int | None) -> bool:
    """True when a joined_* field records a merge into a real flowline"""
    return joined_comid is not None and joined_comid != TERMINAL_COMID


def is_removed(row: Mapping[str, Any]) -> bool:
    """A flowline is removed once it carries a provenance pointer to the flowline holding its length"""
    return has_pointer(row.get("joined_toCOMID")) or has_pointer(row.get("joined_fromCOMID"))


def is_processed(flines: FlowlineLookup) -> bool:
    """True if the table already went through a collapse stage"""
    return any("joined_toCOMID" in row or "joined_fromCOMID" in row for row in flines.values())


def prepare_flowlines(flines: pd.DataFrame) -> pd.DataFrame:
    """Validates and normalizes a flowline attribute table.

    Parameters
    ----------
    flines : pd.DataFrame
        Flowlines with COMID, toCOMID, LENGTHKM and TotDASqKM columns. Other columns are kept

    Returns
    -------
    pd.DataFrame
        A copy with integer (nullable) identifiers and float lengths/areas. toCOMID values of 0,
        null, or ids missing from the table become null. -9999 is kept as the terminal marker

    Raises
    ------
    ValueError
        If required columns are missing, COMIDs repeat, or lengths/areas are negative or missing
    """
    missing = [col for col in REQUIRED_COLUMNS if col not in flines.columns]
    if missing:
        raise ValueError(f"Flowlines are missing required columns: {missing}")

    flines = flines.copy()
    if flines["COMID"].isna().any():
        raise ValueError("COMID cannot contain null values")
    flines["COMID"] = flines["COMID"].astype("int64")

    duplicated = flines["COMID"][flines["COMID"].duplicated()]
    if not duplicated.empty:
        raise ValueError(f"COMID must be unique. Duplicates: {sorted(duplicated.unique().tolist())}")

    for col in ["LENGTHKM", "TotDASqKM"]:
        flines[col] = pd.to_numeric(flines[col], errors="coerce").astype("float64")
        if flines[col].isna().any() or (flines[col] < 0).any():
            raise ValueError(f"{col} must contain non-negative numbers")

    to_comid = pd.to_numeric(flines["toCOMID"], errors="coerce").astype("Int64")
    known = to_comid.isin(flines["COMID"].tolist() + [TERMINAL_COMID]).fillna(False)
    dangling = to_comid.notna() & ~known
    if dangling.any():
        logger.info(f"prepare_flowlines: {int(dangling.sum())} toCOMID values leave the table, treated as outlets")
    flines["toCOMID"] = to_comid.mask(~known)

    for col in ["joined_toCOMID", "joined_fromCOMID"]:
        if col in flines.columns:
            flines[col] = pd.to_numeric(flines[col], errors="coerce").astype("Int64")

    return flines.reset_index(drop=True)


def _clean_value(value: Any) -> Any:
    if value is None or value is pd.NA:
        return None
    if isinstance(value, float) and np.isnan(value):
        return None
    if isinstance(value, np.generic):
        return value.item()
    return value


def to_lookup(flines: pd.DataFrame) -> FlowlineLookup:
    """Converts a prepared flowline table to a COMID keyed row lookup.

    Parameters
    ----------
    flines : pd.DataFrame
        Output of prepare_flowlines

    Returns
    -------
    FlowlineLookup
        COMID -> row dictionary, with None for missing values
    """
    lookup: FlowlineLookup = {}
    for record in flines.to_dict(orient="records"):
        row = {key: _clean_value(value) for key, value in record.items()}
        for col in ID_COLUMNS:
            if col in row and row[col] is not None:
                row[col] = int(row[col])
        row["LENGTHKM"] = float(row["LENGTHKM"])
        row["TotDASqKM"] = float(row["TotDASqKM"])
        lookup[row["COMID"]] = row
    return lookup


def to_dataframe(flines: FlowlineLookup, columns: list[str]) -> pd.DataFrame:
    """Converts a row lookup back to a flowline table.

    Parameters
    ----------
    flines : FlowlineLookup
        COMID -> row dictionary
    columns : list[str]
        Column order of the result. Columns no row carries are filled with nulls

    Returns
    -------
    pd.DataFrame
        One row per COMID with nullable integer identifiers
    """
    df = pd.DataFrame.from_records(list(flines.values()), columns=columns)
    for col in ID_COLUMNS:
        if col in df.columns:
            df[col] = df[col].astype("Int64")
    df["LENGTHKM"] = df["LENGTHKM"].astype("float64")
    df["TotDASqKM"] = df["TotDASqKM"].astype("float64")
    return df.drop_duplicates(subset="COMID").reset_index(drop=True)


def copy_lookup(flines: FlowlineLookup) -> FlowlineLookup:
    """Copies every row so a stage never mutates the table it was handed"""
    return {comid: dict(row) for comid, row in flines.items()}


@dataclass(frozen=True)
class NetworkIndex:
    """Read-only adjacency and attributes of the network before any collapse.

    Tie-breaks read areas and lengths from here since collapsed rows lose their original values.
    """

    downstream: Mapping[int, int | None]
    upstream: Mapping[int, tuple[int, ...]]
    attributes: Mapping[int, Mapping[str, float]]

    @classmethod
    def from_lookup(cls, flines: FlowlineLookup) -> "NetworkIndex":
        """Build the index from an unmodified flowline lookup

        Parameters
        ----------
        flines : FlowlineLookup
            The flowlines before any collapse stage

        Returns
        -------
        NetworkIndex
            The frozen original adjacency
        """
        upstream: dict[int, list[int]] = defaultdict(list)
        downstream: dict[int, int | None] = {}
        attributes: dict[int, Mapping[str, float]] = {}
        for comid, row in flines.items():
            to_comid = row["toCOMID"] if has_downstream(row["toCOMID"]) else None
            downstream[comid] = to_comid
            if to_comid is not None:
                upstream[to_comid].append(comid)
            attributes[comid] = MappingProxyType(
                {"LENGTHKM": row["LENGTHKM"], "TotDASqKM": row["TotDASqKM"]}
            )
        return cls(
            downstream=MappingProxyType(downstream),
            upstream=MappingProxyType({comid: tuple(upstream.get(comid, ())) for comid in flines}),
            attributes=MappingProxyType(attributes),
        )

    def rank(self, comid: int) -> tuple[float, float, int]:
        """Absorber ordering: larger drainage area, then longer, then larger COMID wins"""
        atts = self.attributes[comid]
        return atts["TotDASqKM"], atts["LENGTHKM"], comid

    def select_absorber(self, candidates: list[int] | tuple[int, ...]) -> int:
        """Pick the flowline that absorbs a removed neighbor from its candidates"""
        return max(candidates, key=self.rank)


def _count_upstream(flines: FlowlineLookup) -> dict[int, int]:
    counts: dict[int, int] = defaultdict(int)
    for row in flines.values():
        if has_downstream(row["toCOMID"]):
            counts[row["toCOMID"]] += 1
    return counts


def get_num_upstream(flines: FlowlineLookup) -> dict[int, int]:
    """Number of flowlines whose toCOMID is each flowline"""
    counts = _count_upstream(flines)
    return {comid: counts.get(comid, 0) for comid in flines}


def get_ds_num_upstream(flines: FlowlineLookup) -> dict[int, int]:
    """Number of upstream flowlines of each flowline's downstream neighbor, 0 at outlets"""
    counts = _count_upstream(flines)
    return {
        comid: counts.get(row["toCOMID"], 0) if has_downstream(row["toCOMID"]) else 0
        for comid, row in flines.items()
    }


def get_dsLENGTHKM(flines: FlowlineLookup) -> dict[int, float]:
    """Length of each flowline's downstream neighbor, 0 at outlets"""
    return {
        comid: flines[row["toCOMID"]]["LENGTHKM"]
        if has_downstream(row["toCOMID"]) and row["toCOMID"] in flines
        else 0.0
        for comid, row in flines.items()
    }


def next_joined_comid(row: Mapping[str, Any]) -> int | None:
    """The next provenance hop of a removed flowline. joined_toCOMID takes precedence"""
    if has_pointer(row.get("joined_toCOMID")):
        return row["joined_toCOMID"]
    if has_pointer(row.get("joined_fromCOMID")):
        return row["joined_fromCOMID"]
    return None


def resolve_live_comid(flines: FlowlineLookup, comid: int) -> int:
    """Follow provenance pointers from a flowline to the live flowline holding its length.

    Parameters
    ----------
    flines : FlowlineLookup
        The flowline table
    comid : int
        Starting flowline. Returned unchanged if it is not removed

    Returns
    -------
    int
        COMID of the first flowline on the chain that is not removed

    Raises
    ------
    StuckLoopError
        If the pointers form a cycle
    """
    visited: set[int] = set()
    current = comid
    while is_removed(flines[current]):
        if current in visited:
            raise StuckLoopError(f"Provenance pointers starting at COMID {comid} form a cycle")
        visited.add(current)
        current = next_joined_comid(flines[current])  # type: ignore[assignment]
    return current


def validate_network(flines: pd.DataFrame) -> rx.PyDiGraph:
    """Build a rustworkx graph of toCOMID edges and ensure it is acyclic.

    Parameters
    ----------
    flines : pd.DataFrame
        Output of prepare_flowlines

    Returns
    -------
    rx.PyDiGraph
        The flowlines in graph form, edges pointing downstream

    Raises
    ------
    NetworkCycleError
        If any toCOMID edge closes a cycle
    """
    graph = rx.PyDiGraph(check_cycle=True)
    node_indices: dict[int, int] = {}
    for comid in flines["COMID"]:
        node_indices[int(comid)] = graph.add_node(int(comid))

    for comid, to_comid in zip(flines["COMID"], flines["toCOMID"], strict=True):
        if pd.isna(to_comid) or int(to_comid) == TERMINAL_COMID:
            continue
        if int(comid) == int(to_comid):
            raise NetworkCycleError(f"Flowline {comid} flows into itself")
        try:
            graph.add_edge(node_indices[int(comid)], node_indices[int(to_comid)], None)
        except rx.DAGWouldCycle as e:
            raise NetworkCycleError(f"Flowline {comid} -> {to_comid} closes a cycle") from e

    assert rx.is_directed_acyclic_graph(graph), "Flowline network is not acyclic"
    return graph
