"""
Utility functions for loading and preparing the measurement spreadsheet.
"""
import logging
import os
from typing import Iterable, Optional

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

EXCEL_EXTENSIONS = (".xls", ".xlsx")
TEXT_SEPARATORS = {".csv": ",", ".tsv": "\t", ".txt": "\t"}


def load_measurements(
    file_path: str, sheet_name=0, id_column: Optional[str] = None
) -> pd.DataFrame:
    """Loads a table of specimen measurements.

    Args:
        file_path (str): Path to a csv, tsv, txt, xls or xlsx file.
        sheet_name (str | int, optional): Sheet to read from a workbook.
            Defaults to the first sheet.
        id_column (str, optional): Column holding specimen identifiers,
            used as the index.

    Returns:
        pd.DataFrame: One row per specimen.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If the extension is not supported, the table is empty
            or the id column is missing.
    """
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"Data file not found at path: {file_path}")

    extension = os.path.splitext(file_path)[1].lower()
    if extension in EXCEL_EXTENSIONS:
        df = pd.read_excel(file_path, sheet_name=sheet_name)
    elif extension in TEXT_SEPARATORS:
        try:
            df = pd.read_csv(file_path, sep=TEXT_SEPARATORS[extension])
        except pd.errors.EmptyDataError:
            raise ValueError(f"Data file is empty: {file_path}")
    else:
        raise ValueError(f"Unsupported file type '{extension}' for {file_path}")

    df.columns = [str(col).strip() for col in df.columns]
    df = df.dropna(how="all")

    if df.empty:
        raise ValueError(f"Data file is empty: {file_path}")

    if id_column is not None:
        if id_column not in df.columns:
            raise ValueError(f"Id column '{id_column}' not found in {file_path}")
        duplicated = df[id_column][df[id_column].duplicated()].unique().tolist()
        if duplicated:
            raise ValueError(f"Duplicated specimen ids in '{id_column}': {duplicated}")
        df = df.set_index(id_column)

    logger.info(f"Loaded {len(df)} specimens with {len(df.columns)} columns from {file_path}")
    logger.debug(f"Columns: {list(df.columns)}")

    return df


def select_measurements(
    df: pd.DataFrame,
    columns: Optional[Iterable[str]] = None,
    exclude: Iterable[str] = (),
) -> pd.DataFrame:
    """Extracts the numeric measurement columns.

    Args:
        df (pd.DataFrame): The loaded specimen table.
        columns (Iterable[str], optional): Measurement columns to keep, in
            order. Cells that can't be read as numbers become NaN.
        exclude (Iterable[str], optional): Columns to skip when
            ``columns`` is not given (ids, groups, coordinates...).

    Returns:
        pd.DataFrame: Float measurements with the original index.

    Raises:
        ValueError: If requested columns are missing or fewer than two
            measurement columns are left.
    """
    if columns is not None:
        columns = list(columns)
        missing = [col for col in columns if col not in df.columns]
        if missing:
            raise ValueError(f"Missing measurement columns: {missing}")
        measurements = df[columns].apply(pd.to_numeric, errors="coerce")
    else:
        excluded = set(exclude)
        numeric = [
            col
            for col in df.columns
            if col not in excluded and pd.api.types.is_numeric_dtype(df[col])
        ]
        measurements = df[numeric]

    if measurements.shape[1] < 2:
        raise ValueError(
            f"At least 2 measurement columns are required, found {measurements.shape[1]}"
        )

    return measurements.astype(float)


def log_transform(df: pd.DataFrame, base: float = 10) -> pd.DataFrame:
    """Log-transforms measurements, keeping missing values missing.

    Args:
        df (pd.DataFrame): Positive measurements.
        base (float, optional): Logarithm base. Defaults to 10.

    Returns:
        pd.DataFrame: Transformed copy of ``df``.

    Raises:
        ValueError: If any measurement is zero or negative.
    """
    if base <= 0 or base == 1:
        raise ValueError(f"Invalid logarithm base: {base}")

    non_positive = (df <= 0).sum()
    if non_positive.any():
        offenders = non_positive[non_positive > 0].to_dict()
        raise ValueError(f"Cannot log-transform non-positive values: {offenders}")

    return np.log(df) / np.log(base)


def describe_measurements(df: pd.DataFrame) -> pd.DataFrame:
    """Per-variable counts and descriptive statistics.

    Args:
        df (pd.DataFrame): Measurement table.

    Returns:
        pd.DataFrame: One row per variable with count, missing, mean, std,
        min and max.
    """
    return pd.DataFrame(
        {
            "count": df.count(),
            "missing": df.isna().sum(),
            "mean": df.mean(),
            "std": df.std(),
            "min": df.min(),
            "max": df.max(),
        }
    )
