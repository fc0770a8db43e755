"""Unit tests for the network table, indices and graph metrics"""

import pandas as pd
import pytest
import rustworkx as rx
from conftest import make_flowlines, make_lookup

from hydrofabric_collapse.collapse.network import (
    NetworkIndex,
    get_ds_num_upstream,
    get_dsLENGTHKM,
    get_num_upstream,
    prepare_flowlines,
    resolve_live_comid,
    to_dataframe,
    to_lookup,
    validate_network,
)
from hydrofabric_collapse.exceptions import NetworkCycleError, StuckLoopError


class TestPrepareFlowlines:
    """Tests for input validation and normalization."""

    def test_missing_columns(self) -> None:
        """Test that a missing required column is rejected."""
        with pytest.raises(ValueError, match="missing required columns"):
            prepare_flowlines(pd.DataFrame({"COMID": [1], "toCOMID": [None], "LENGTHKM": [1.0]}))

    def test_duplicate_comid(self) -> None:
        """Test that repeated COMIDs are rejected."""
        flines = make_flowlines([(1, None, 1.0, 1.0), (1, None, 2.0, 1.0)])
        with pytest.raises(ValueError, match="unique"):
            prepare_flowlines(flines)

    def test_negative_length(self) -> None:
        """Test that negative lengths are rejected."""
        flines = make_flowlines([(1, None, -1.0, 1.0)])
        with pytest.raises(ValueError, match="LENGTHKM"):
            prepare_flowlines(flines)

    def test_normalizes_outlet_markers(self) -> None:
        """Test that 0, null and unknown toCOMIDs become null while -9999 is kept."""
        flines = pd.DataFrame(
            {
                "COMID": [1, 2, 3, 4, 5],
                "toCOMID": [2.0, 0.0, float("nan"), 999.0, -9999.0],
                "LENGTHKM": [1.0, 1.0, 1.0, 1.0, 1.0],
                "TotDASqKM": [1.0, 2.0, 3.0, 4.0, 5.0],
            }
        )

        prepared = prepare_flowlines(flines)

        assert prepared["toCOMID"].dtype == "Int64"
        assert prepared["toCOMID"].iloc[0] == 2
        assert prepared["toCOMID"].iloc[1:4].isna().all()
        assert prepared["toCOMID"].iloc[4] == -9999

    def test_keeps_extra_columns(self) -> None:
        """Test that columns outside the required set pass through."""
        flines = make_flowlines([(1, None, 1.0, 1.0)])
        flines["gnis_name"] = ["Test Creek"]

        prepared = prepare_flowlines(flines)

        assert prepared["gnis_name"].tolist() == ["Test Creek"]
        assert to_lookup(prepared)[1]["gnis_name"] == "Test Creek"


class TestLookupConversion:
    """Tests for converting between tables and row lookups."""

    def test_lookup_uses_none_for_missing(self) -> None:
        """Test that missing toCOMIDs become None with python ints elsewhere."""
        lookup, _ = make_lookup([(1, 2, 1.0, 1.0), (2, None, 1.0, 2.0)])

        assert lookup[1]["toCOMID"] == 2
        assert isinstance(lookup[1]["toCOMID"], int)
        assert lookup[2]["toCOMID"] is None

    def test_dataframe_fills_absent_columns(self) -> None:
        """Test that columns no row carries are returned as nulls."""
        lookup, _ = make_lookup([(1, None, 1.0, 1.0)])

        df = to_dataframe(lookup, ["COMID", "toCOMID", "LENGTHKM", "TotDASqKM", "joined_toCOMID"])

        assert df["joined_toCOMID"].dtype == "Int64"
        assert df["joined_toCOMID"].isna().all()


class TestNetworkIndex:
    """Tests for the read-only original adjacency."""

    def test_upstream_and_downstream(self) -> None:
        """Test adjacency of a small confluence."""
        _, index = make_lookup([(1, 3, 1.0, 1.0), (2, 3, 1.0, 2.0), (3, None, 1.0, 4.0)])

        assert set(index.upstream[3]) == {1, 2}
        assert index.upstream[1] == ()
        assert index.downstream[1] == 3
        assert index.downstream[3] is None

    def test_index_is_read_only(self) -> None:
        """Test that the original attributes cannot be modified."""
        _, index = make_lookup([(1, None, 1.0, 1.0)])

        with pytest.raises(TypeError):
            index.attributes[1]["LENGTHKM"] = 5.0  # type: ignore[index]

    def test_absorber_prefers_area_then_length_then_comid(self) -> None:
        """Test the absorber tie-break ordering."""
        _, index = make_lookup(
            [
                (1, 5, 1.0, 10.0),
                (2, 5, 2.0, 10.0),
                (3, 5, 2.0, 10.0),
                (4, 5, 9.0, 1.0),
                (5, None, 1.0, 30.0),
            ]
        )

        assert index.select_absorber([1, 4]) == 1
        assert index.select_absorber([1, 2]) == 2
        assert index.select_absorber([2, 3]) == 3

    def test_from_lookup_is_unchanged_by_later_edits(self) -> None:
        """Test that the index keeps the original values after the table changes."""
        lookup, index = make_lookup([(1, None, 1.0, 1.0)])
        lookup[1]["LENGTHKM"] = 0.0

        assert index.attributes[1]["LENGTHKM"] == 1.0


class TestMetrics:
    """Tests for the shared graph metrics."""

    def test_metrics_on_confluence(self) -> None:
        """Test num_upstream, ds_num_upstream and dsLENGTHKM on 1, 2 -> 3 -> 4."""
        lookup, _ = make_lookup([(1, 3, 1.0, 1.0), (2, 3, 1.0, 1.0), (3, 4, 2.5, 3.0), (4, None, 7.0, 4.0)])

        assert get_num_upstream(lookup) == {1: 0, 2: 0, 3: 2, 4: 1}
        assert get_ds_num_upstream(lookup) == {1: 2, 2: 2, 3: 1, 4: 0}
        assert get_dsLENGTHKM(lookup) == {1: 2.5, 2: 2.5, 3: 7.0, 4: 0.0}

    def test_terminal_marker_is_not_a_neighbor(self) -> None:
        """Test that -9999 does not count as a downstream flowline."""
        lookup, _ = make_lookup([(1, -9999, 1.0, 1.0)])

        assert get_ds_num_upstream(lookup) == {1: 0}
        assert get_dsLENGTHKM(lookup) == {1: 0.0}


class TestResolveLiveComid:
    """Tests for following provenance pointers."""

    def test_follows_mixed_pointers(self) -> None:
        """Test a joined_toCOMID hop followed by a joined_fromCOMID hop."""
        lookup, _ = make_lookup([(1, 2, 0.0, 1.0), (2, 3, 0.0, 2.0), (3, None, 5.0, 3.0)])
        for row in lookup.values():
            row["joined_toCOMID"] = None
            row["joined_fromCOMID"] = None
        lookup[1]["joined_toCOMID"] = 2
        lookup[2]["joined_fromCOMID"] = 3

        assert resolve_live_comid(lookup, 1) == 3
        assert resolve_live_comid(lookup, 3) == 3

    def test_cycle_raises(self) -> None:
        """Test that a pointer cycle is fatal."""
        lookup, _ = make_lookup([(1, None, 0.0, 1.0), (2, None, 0.0, 2.0)])
        lookup[1]["joined_toCOMID"] = 2
        lookup[2]["joined_toCOMID"] = 1

        with pytest.raises(StuckLoopError):
            resolve_live_comid(lookup, 1)


class TestValidateNetwork:
    """Tests for the rustworkx cycle check."""

    def test_valid_network(self, sample_network: pd.DataFrame) -> None:
        """Test that a dendritic network builds a DAG."""
        graph = validate_network(prepare_flowlines(sample_network))

        assert isinstance(graph, rx.PyDiGraph)
        assert len(graph) == 12
        assert graph.num_edges() == 9

    def test_cycle_detected(self) -> None:
        """Test that 1 -> 2 -> 1 is rejected."""
        flines = prepare_flowlines(make_flowlines([(1, 2, 1.0, 1.0), (2, 1, 1.0, 1.0)]))

        with pytest.raises(NetworkCycleError):
            validate_network(flines)

    def test_self_loop_detected(self) -> None:
        """Test that a flowline flowing into itself is rejected."""
        flines = prepare_flowlines(make_flowlines([(1, 1, 1.0, 1.0)]))

        with pytest.raises(NetworkCycleError):
            validate_network(flines)

    def test_cycle_error_is_a_stuck_loop(self) -> None:
        """Test that callers catching StuckLoopError also catch cycle errors."""
        assert issubclass(NetworkCycleError, StuckLoopError)

    def test_index_builds_from_validated_table(self, sample_network: pd.DataFrame) -> None:
        """Test that validation leaves the table usable for indexing."""
        prepared = prepare_flowlines(sample_network)
        validate_network(prepared)

        index = NetworkIndex.from_lookup(to_lookup(prepared))

        assert set(index.upstream[8]) == {6, 7}
