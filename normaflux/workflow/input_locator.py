"""Locate and load the quantification and design tables."""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Union

import pandas as pd
import polars as pl
import pyarrow.csv as pv_csv

from normaflux.utils.errors import AmbiguousInputError, MissingInputError
from normaflux.utils.utils import log_info, log_time

NULL_VALUES = ["NA", "NaN", "N/A", ""]


@dataclass(frozen=True)
class InputFiles:
    quantification: Path
    design: Path


@dataclass(frozen=True)
class LoadedInputs:
    files: InputFiles
    quantification: pl.DataFrame
    design: pl.DataFrame


def find_single_file(directory: Union[str, Path], pattern: str, what: str) -> Path:
    """Return the only file in `directory` matching `pattern`.

    Zero matches raise MissingInputError, several raise AmbiguousInputError.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise MissingInputError(f"Input directory not found: {directory}")

    matches: List[Path] = sorted(p for p in directory.glob(pattern) if p.is_file())
    if not matches:
        raise MissingInputError(f"No {what} file matching {pattern!r} in {directory}")
    if len(matches) > 1:
        names = ", ".join(p.name for p in matches)
        raise AmbiguousInputError(
            f"Expected exactly one {what} file matching {pattern!r} in {directory}, found {len(matches)}: {names}"
        )
    return matches[0]


def locate_inputs(input_dir: Union[str, Path], quant_pattern: str, design_pattern: str) -> InputFiles:
    quant = find_single_file(input_dir, quant_pattern, "quantification")
    design = find_single_file(input_dir, design_pattern, "design")
    log_info(f"Quantification file: {quant}")
    log_info(f"Design file: {design}")
    return InputFiles(quantification=quant, design=design)


def _delimiter_for(path: Path) -> str:
    return "," if path.suffix.lower() == ".csv" else "\t"


def load_table(file_path: Union[str, Path], load_method: str = "polars") -> pl.DataFrame:
    """Load a delimited table; comma for .csv, tab for .txt/.tsv."""
    file_path = Path(file_path)
    if file_path.suffix.lower() not in (".csv", ".tsv", ".txt"):
        raise ValueError(f"Only CSV, TSV or TXT files are supported, got {file_path.name}")

    delimiter = _delimiter_for(file_path)

    if load_method == "polars":
        return pl.read_csv(file_path,
                           separator=delimiter,
                           infer_schema_length=10000,
                           null_values=NULL_VALUES)
    elif load_method == "pyarrow":
        parse_options = pv_csv.ParseOptions(delimiter=delimiter)
        convert_options = pv_csv.ConvertOptions(null_values=NULL_VALUES, strings_can_be_null=True)
        arrow_table = pv_csv.read_csv(file_path, parse_options=parse_options, convert_options=convert_options)
        return pl.from_arrow(arrow_table)
    elif load_method == "pandas":
        df = pd.read_csv(file_path, sep=delimiter, na_values=NULL_VALUES)
        return pl.from_pandas(df)
    else:
        raise ValueError(f"Unknown load method: {load_method}")


@log_time("Input Loading")
def load_inputs(input_dir: Union[str, Path],
                quant_pattern: str,
                design_pattern: str,
                load_method: str = "polars") -> LoadedInputs:
    files = locate_inputs(input_dir, quant_pattern, design_pattern)
    quant = load_table(files.quantification, load_method)
    design = load_table(files.design, load_method)
    log_info(f"Quantification table: {quant.height} rows x {quant.width} columns")
    log_info(f"Design table: {design.height} samples")
    return LoadedInputs(files=files, quantification=quant, design=design)
