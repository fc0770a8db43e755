"""A file to host all flowline collapse schemas"""

from enum import StrEnum

import pyarrow as pa
from pydantic import BaseModel, Field

TERMINAL_COMID = -9999


class JoinCategory(StrEnum):
    """The rule that removed a flowline, in pipeline priority order"""

    OUTLET = "outlet"
    MAINSTEM = "mainstem"
    CONFLUENCE = "confluence"
    HEADWATER = "headwater"


class CollapseConfig(BaseModel):
    """Configs for the collapse stage"""

    thresh: float = Field(
        default=1.0,
        gt=0,
        description="Length threshold (km). Flowlines shorter than this are eliminated",
    )
    mainstem_thresh: float | None = Field(
        default=None,
        gt=0,
        description=(
            "Threshold (km) for combining inter-confluence mainstems. When None the maximum flowline "
            "length is used and the mainstem top pass is skipped"
        ),
    )
    add_category: bool = Field(
        default=False, description="Annotate each removed flowline with the rule that removed it"
    )
    warn: bool = Field(default=True, description="Surface non-fatal configuration warnings")


class CollapsedFlowlines:
    """The schema for the collapsed flowlines table"""

    @classmethod
    def columns(cls) -> list[str]:
        """Returns the columns associated with this schema

        Returns
        -------
        list[str]
            The schema columns
        """
        return [
            "COMID",
            "toCOMID",
            "LENGTHKM",
            "TotDASqKM",
            "joined_toCOMID",
            "joined_fromCOMID",
            "join_category",
        ]

    @classmethod
    def arrow_schema(cls) -> pa.Schema:
        """Returns the PyArrow Schema object.

        Returns
        -------
        pa.Schema
            PyArrow schema for collapsed flowlines table
        """
        return pa.schema(
            [
                pa.field("COMID", pa.int64(), nullable=False),
                pa.field("toCOMID", pa.int64(), nullable=True),
                pa.field("LENGTHKM", pa.float64(), nullable=False),
                pa.field("TotDASqKM", pa.float64(), nullable=False),
                pa.field("joined_toCOMID", pa.int64(), nullable=True),
                pa.field("joined_fromCOMID", pa.int64(), nullable=True),
                pa.field("join_category", pa.string(), nullable=True),
            ]
        )


class ReconciledFlowlines:
    """The schema for the reconciled (grouped) flowlines table"""

    @classmethod
    def columns(cls) -> list[str]:
        """Returns the columns associated with this schema

        Returns
        -------
        list[str]
            The schema columns
        """
        return ["ID", "toID", "LENGTHKM", "TotDASqKM", "member_COMID"]

    @classmethod
    def arrow_schema(cls) -> pa.Schema:
        """Returns the PyArrow Schema object.

        Returns
        -------
        pa.Schema
            PyArrow schema for reconciled flowlines table
        """
        return pa.schema(
            [
                pa.field("ID", pa.int64(), nullable=False),
                pa.field("toID", pa.int64(), nullable=True),
                pa.field("LENGTHKM", pa.float64(), nullable=False),
                pa.field("TotDASqKM", pa.float64(), nullable=False),
                pa.field("member_COMID", pa.list_(pa.int64()), nullable=False),
            ]
        )
