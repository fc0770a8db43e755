from pathlib import Path

import pytest
from pydantic import ValidationError

from hydrofabric_collapse._version import __version__
from hydrofabric_collapse.config import RunConfig
from hydrofabric_collapse.schemas.collapse import CollapseConfig


@pytest.fixture
def sample_config_invalid_yaml() -> Path:
    return Path(__file__).parent / "data/sample_config_invalid.yaml"


def test_from_yaml(sample_config_yaml: Path) -> None:
    """Tests output path generation and nested collapse settings"""
    cfg = RunConfig.from_yaml(sample_config_yaml)

    assert cfg.input_path == Path("data/flowlines.csv")
    assert cfg.output_file_path == Path("data/out/collapsed.parquet")
    assert cfg.reconciled_file_path == Path("data/out/collapsed_reconciled.parquet")
    assert cfg.reconcile is False
    assert cfg.collapse.thresh == 2.0
    assert cfg.collapse.mainstem_thresh == 5.0
    assert cfg.collapse.add_category is True
    assert cfg.collapse.warn is True


def test_defaults() -> None:
    """Tests the versioned default output name and collapse settings"""
    cfg = RunConfig()

    assert cfg.output_file_path.name == f"collapsed_{__version__}.parquet"
    assert cfg.reconciled_file_path.name == f"collapsed_{__version__}_reconciled.parquet"
    assert cfg.collapse.thresh == 1.0
    assert cfg.collapse.mainstem_thresh is None


def test_invalid_thresh(sample_config_invalid_yaml: Path) -> None:
    """Tests that a negative threshold fails validation"""
    with pytest.raises(ValidationError):
        RunConfig.from_yaml(sample_config_invalid_yaml)


@pytest.mark.parametrize("mainstem_thresh", [0.0, -2.0])
def test_invalid_mainstem_thresh(mainstem_thresh: float) -> None:
    """Tests that a non-positive mainstem threshold fails validation"""
    with pytest.raises(ValidationError):
        CollapseConfig(mainstem_thresh=mainstem_thresh)
