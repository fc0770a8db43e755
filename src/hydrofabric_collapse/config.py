"""A pydantic basemodel for setting RunConfig defaults"""

from pathlib import Path
from typing import Self

import yaml
from pydantic import BaseModel, Field
from pyprojroot import here

from hydrofabric_collapse._version import __version__
from hydrofabric_collapse.schemas.collapse import CollapseConfig


class RunConfig(BaseModel):
    """A config validation class for default collapse settings"""

    input_path: Path = Field(
        default=here() / "data/flowlines.parquet",
        description="The flowline attribute table to collapse. Parquet or CSV",
    )

    output_dir: Path = Field(
        default=here() / "data/",
        description="The directory for output files to be saved from collapse runs",
    )

    output_name: Path = Field(
        default=f"collapsed_{__version__}.parquet", description="The output file name"
    )

    output_file_path: Path = Field(
        default_factory=lambda data: data["output_dir"] / data["output_name"],
        description="The full output file path",
    )

    reconcile: bool = Field(
        default=True, description="Decides if we want to build the reconciled (grouped) network"
    )

    collapse: CollapseConfig = Field(
        default=CollapseConfig(), description="Settings for the collapse algorithm"
    )

    @property
    def reconciled_file_path(self) -> Path:
        """The output path of the reconciled network, next to the collapsed output"""
        return self.output_file_path.with_name(f"{self.output_file_path.stem}_reconciled.parquet")

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """An internal method to read a config from a YAML file

        Parameters
        ----------
        path : str | Path
            The path to the provided YAML file

        Returns
        -------
        RunConfig
            A configuration object validated
        """
        with open(path) as f:
            data = yaml.safe_load(f)

        return cls(**(data or {}))
