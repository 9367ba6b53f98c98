"""
Missing value triage for morphometric tables.

Museum specimens are often broken or partially measured, so a raw table has
holes scattered across both specimens and variables. PCA and LDA need a
complete matrix, and imputing skull measurements would invent morphology, so
the table is pruned instead: hopeless variables are dropped outright, then
the worst remaining variable or specimen is removed one at a time until no
missing value is left.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable

import pandas as pd

logger = logging.getLogger(__name__)


@dataclass
class PruneStep:
    """A single removal made while pruning."""

    axis: str  # "column" or "row"
    label: object
    missing: int  # missing cells in the removed column/row at removal time

    def __str__(self) -> str:
        return f"dropped {self.axis} {self.label!r} ({self.missing} missing)"


@dataclass
class PruneResult:
    """Complete table left after pruning, with a record of what went."""

    data: pd.DataFrame
    dropped_columns: list = field(default_factory=list)
    dropped_rows: list = field(default_factory=list)
    steps: list[PruneStep] = field(default_factory=list)

    def summary(self) -> str:
        lines = [
            "Missing data triage",
            f"  Retained: {self.data.shape[0]} specimens x {self.data.shape[1]} variables",
            f"  Dropped variables ({len(self.dropped_columns)}): {self.dropped_columns}",
            f"  Dropped specimens ({len(self.dropped_rows)}): {self.dropped_rows}",
        ]
        if self.steps:
            lines.append("  Steps:")
            lines.extend(f"    {i + 1}. {step}" for i, step in enumerate(self.steps))
        return "\n".join(lines)


def missing_summary(df: pd.DataFrame) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Counts missing values per column and per row.

    Args:
        df (pd.DataFrame): Measurement table.

    Returns:
        tuple[pd.DataFrame, pd.DataFrame]: Column and row summaries, each
        with ``missing`` and ``fraction`` columns.
    """
    column_missing = df.isna().sum()
    row_missing = df.isna().sum(axis=1)

    columns = pd.DataFrame(
        {"missing": column_missing, "fraction": column_missing / max(len(df), 1)}
    )
    rows = pd.DataFrame(
        {"missing": row_missing, "fraction": row_missing / max(df.shape[1], 1)}
    )
    return columns, rows


def prune_missing(
    df: pd.DataFrame,
    max_column_missing: float = 0.5,
    min_columns: int = 2,
    min_rows: int = 3,
    protected_columns: Iterable[str] = (),
) -> PruneResult:
    """Removes variables and specimens until the table is complete.

    Columns missing more than ``max_column_missing`` of their values are
    dropped first. After that, each step compares the worst column and the
    worst row by missing fraction and drops the column only when it is
    strictly worse, still leaves ``min_columns`` variables and is not
    protected; otherwise the row goes.

    Args:
        df (pd.DataFrame): Measurement table, possibly with NaN.
        max_column_missing (float, optional): Fraction above which a column
            is dropped up front. Defaults to 0.5.
        min_columns (int, optional): Fewest variables to keep. Defaults to 2.
        min_rows (int, optional): Fewest specimens acceptable in the
            result. Defaults to 3.
        protected_columns (Iterable[str], optional): Columns never dropped.

    Returns:
        PruneResult: The complete table and the removal log.

    Raises:
        ValueError: If the input is empty, or too few columns or rows
            survive.
    """
    if df.empty:
        raise ValueError("Cannot prune an empty table")
    if not 0 <= max_column_missing <= 1:
        raise ValueError("max_column_missing must be between 0 and 1")

    protected = set(protected_columns)
    data = df.copy()
    result = PruneResult(data=data)

    # Stage 1: variables that are mostly empty
    column_fraction = data.isna().mean()
    hopeless = [
        col
        for col in data.columns
        if column_fraction[col] > max_column_missing and col not in protected
    ]
    for col in hopeless:
        result.steps.append(PruneStep("column", col, int(data[col].isna().sum())))
        result.dropped_columns.append(col)
    data = data.drop(columns=hopeless)

    if data.shape[1] < min_columns:
        raise ValueError(
            f"Only {data.shape[1]} variables have at most {max_column_missing:.0%} "
            f"missing values, {min_columns} required"
        )

    # Stage 2: remove the worst offender one at a time
    while data.isna().any().any():
        column_missing = data.isna().sum()
        row_missing = data.isna().sum(axis=1)

        worst_column = column_missing.idxmax()
        # positional, so duplicated specimen labels only lose one row
        worst_position = int(row_missing.to_numpy().argmax())
        worst_row = data.index[worst_position]

        column_fraction = column_missing[worst_column] / len(data)
        row_fraction = row_missing.iloc[worst_position] / data.shape[1]

        # a protected worst column sends the specimen instead
        if (
            worst_column not in protected
            and column_fraction > row_fraction
            and data.shape[1] > min_columns
        ):
            result.steps.append(PruneStep("column", worst_column, int(column_missing[worst_column])))
            result.dropped_columns.append(worst_column)
            data = data.drop(columns=[worst_column])
        else:
            result.steps.append(PruneStep("row", worst_row, int(row_missing.iloc[worst_position])))
            result.dropped_rows.append(worst_row)
            data = data.iloc[[i for i in range(len(data)) if i != worst_position]]

        if len(data) < min_rows:
            raise ValueError(
                f"Pruning left {len(data)} specimens, at least {min_rows} required"
            )

    if len(data) < min_rows:
        raise ValueError(f"Table has {len(data)} specimens, at least {min_rows} required")

    result.data = data
    logger.info(
        f"Pruned missing data: {len(result.dropped_columns)} variables and "
        f"{len(result.dropped_rows)} specimens removed, "
        f"{data.shape[0]} x {data.shape[1]} complete table remains"
    )
    for step in result.steps:
        logger.debug(str(step))

    return result
