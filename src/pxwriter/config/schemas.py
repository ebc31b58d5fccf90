from __future__ import annotations
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Literal, Optional, List, Union

DEFAULT_COLLECTION = "zsdata_m26"


class RunCfg(BaseModel):
    """
    Global run controls.
    """

    run_number: int = 1

    # Performance / execution
    workers: Union[int, Literal["auto"]] = "auto"
    progress: bool = True

    # Diagnostics
    diagnostics_level: int = 1  # 0=warnings only, 1=status, 2=verbose

    # Synthetic source controls
    n_events: int = 100
    seed: Optional[int] = None
    hits_per_detector: float = 2.0  # mean of a Poisson draw

    @field_validator("diagnostics_level")
    def _diag_range(cls, v: int) -> int:
        if v not in (0, 1, 2):
            raise ValueError("diagnostics_level must be 0, 1, or 2")
        return v


class IOCfg(BaseModel):
    """
    Input source and output location.

    TOML:

    [io]
    output_dir   = "output"
    input_format = "table"        # "table" | "synthetic"
    input_path   = "hits.csv"     # required for "table"
    """

    output_dir: str = "output"
    input_format: Literal["table", "synthetic"] = "synthetic"
    input_path: Optional[str] = None

    @model_validator(mode="after")
    def _need_input(self):
        if self.input_format == "table" and not self.input_path:
            raise ValueError("io.input_path is required when io.input_format = 'table'")
        return self


class WriterCfg(BaseModel):
    """
    Event/geometry writer settings.

    TOML (short form):

    [writer]
    detector_name = "EUTelescope"
    output_collection_name = "zsdata_m26"

    TOML (long form, [detector, collection, sensor_id]):

    [writer]
    detector_assignment = [["telescope0", "zsdata_m26", "0"],
                           ["dut",        "zsdata_dut", "6"]]
    """

    file_name: str = "output.h5"
    geometry_file: Optional[str] = "allpix_squared_gear.xml"
    detector_name: str = "EUTelescope"
    pixel_type: Literal[1, 2] = 2
    dump_mc_truth: bool = False
    event_type: int = 2

    output_collection_name: Optional[str] = None
    detector_assignment: Optional[List[List[str]]] = None

    @field_validator("detector_assignment", mode="before")
    def _stringify(cls, v):
        if v is None:
            return v
        return [[str(x) for x in row] for row in v]


class FieldCfg(BaseModel):
    """
    Global magnetic field.

    [field]
    type = "constant"
    vector = [0.0, 0.0, 1.0]     # T
    """

    type: Literal["none", "constant", "linear", "custom"] = "none"
    vector: List[float] = Field(default_factory=lambda: [0.0, 0.0, 0.0])
    gradient: Optional[List[List[float]]] = None  # T/mm, linear only

    @field_validator("vector")
    def _len3(cls, v: List[float]) -> List[float]:
        if len(v) != 3:
            raise ValueError("field.vector must have three components")
        return v


class DetectorCfg(BaseModel):
    """
    One [[detectors]] entry. position in mm, orientation as xyz angles in deg
    (or a 3x3 matrix), pixel geometry in um.
    """

    name: str
    type: str = "mimosa26"
    position: List[float]
    orientation: Union[List[float], List[List[float]]] = Field(default_factory=lambda: [0.0, 0.0, 0.0])
    number_of_pixels: List[int] = Field(default_factory=lambda: [1152, 576])
    pixel_size: List[float] = Field(default_factory=lambda: [18.4, 18.4])
    sensor_thickness: float = 50.0
    sensor_excess: float = 0.0
    chip_thickness: float = 0.0

    @field_validator("position")
    def _position_len3(cls, v: List[float]) -> List[float]:
        if len(v) != 3:
            raise ValueError("detector position must have three components")
        return v

    @field_validator("number_of_pixels", "pixel_size")
    def _len2(cls, v):
        if len(v) != 2:
            raise ValueError("number_of_pixels and pixel_size must have two components")
        return v

    @field_validator("number_of_pixels")
    def _positive_pixels(cls, v: List[int]) -> List[int]:
        if min(v) < 1:
            raise ValueError("number_of_pixels must be positive")
        return v


class Config(BaseModel):
    """
    Top-level TOML configuration.
    """

    run: RunCfg = Field(default_factory=RunCfg)
    io: IOCfg = Field(default_factory=IOCfg)
    writer: WriterCfg = Field(default_factory=WriterCfg)
    field: FieldCfg = Field(default_factory=FieldCfg)
    detectors: List[DetectorCfg]
