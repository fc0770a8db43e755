"""conftest for the collapse tests with small hand-traced networks."""

from pathlib import Path

import pandas as pd
import pytest

from hydrofabric_collapse.collapse.network import FlowlineLookup, NetworkIndex, prepare_flowlines, to_lookup
from hydrofabric_collapse.config import RunConfig
from hydrofabric_collapse.schemas.collapse import CollapseConfig
from hydrofabric_collapse.task_instance import TaskInstance

FlowlineRow = tuple[int, int | None, float, float]


def make_flowlines(rows: list[FlowlineRow]) -> pd.DataFrame:
    """Build a flowline table from (COMID, toCOMID, LENGTHKM, TotDASqKM) tuples"""
    return pd.DataFrame(rows, columns=["COMID", "toCOMID", "LENGTHKM", "TotDASqKM"]).astype(
        {"toCOMID": "Int64"}
    )


def make_lookup(rows: list[FlowlineRow]) -> tuple[FlowlineLookup, NetworkIndex]:
    """Build a prepared lookup and its original network index"""
    lookup = to_lookup(prepare_flowlines(make_flowlines(rows)))
    return lookup, NetworkIndex.from_lookup(lookup)


def by_comid(df: pd.DataFrame) -> pd.DataFrame:
    """Index a collapse result by COMID"""
    return df.set_index("COMID")


@pytest.fixture
def task_instance() -> TaskInstance:
    """Fixture providing a TaskInstance."""
    return TaskInstance()


@pytest.fixture
def linear_flowlines() -> pd.DataFrame:
    """A short headwater on a linear network: 1 -> 2 -> 3"""
    return make_flowlines([(1, 2, 0.5, 1.0), (2, 3, 5.0, 2.0), (3, None, 5.0, 3.0)])


@pytest.fixture
def confluence_flowlines() -> pd.DataFrame:
    """A short headwater and a long flowline meeting at 3: 1, 2 -> 3"""
    return make_flowlines([(1, 3, 0.5, 1.0), (2, 3, 5.0, 2.0), (3, None, 5.0, 4.0)])


@pytest.fixture
def isolated_outlet() -> pd.DataFrame:
    """A single short flowline with nothing upstream or downstream"""
    return make_flowlines([(1, None, 0.5, 1.0)])


@pytest.fixture
def sample_network() -> pd.DataFrame:
    """A network exercising every collapse rule with thresh=1.

    1, 2 -> 3;  3, 4 -> 5;  5 -> 6;  6, 7 -> 8;  8 -> 9 (outlet);  10 -> 11 (outlet);  12 isolated
    """
    return make_flowlines(
        [
            (1, 3, 0.2, 1.0),
            (2, 3, 3.0, 2.0),
            (3, 5, 0.4, 4.0),
            (4, 5, 2.0, 3.0),
            (5, 6, 0.6, 8.0),
            (6, 8, 4.0, 9.0),
            (7, 8, 0.3, 1.0),
            (8, 9, 0.5, 11.0),
            (9, None, 0.2, 12.0),
            (10, 11, 2.5, 1.0),
            (11, None, 0.7, 2.0),
            (12, None, 0.4, 0.5),
        ]
    )


@pytest.fixture
def sample_config_yaml() -> Path:
    return Path(__file__).parent / "data/sample_config.yaml"


@pytest.fixture
def sample_config(sample_network: pd.DataFrame, tmp_path: Path) -> RunConfig:
    """Fixture providing a RunConfig pointed at the sample network written to CSV."""
    input_path = tmp_path / "flowlines.csv"
    sample_network.to_csv(input_path, index=False)
    return RunConfig(
        input_path=input_path,
        output_dir=tmp_path / "out",
        output_name="collapsed.parquet",
        collapse=CollapseConfig(thresh=1.0, add_category=True),
    )
