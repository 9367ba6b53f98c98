"""
Shared fixtures: synthetic skull measurement tables.
"""

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest

MEASUREMENTS = [
    "condylobasal_length",
    "zygomatic_breadth",
    "mastoid_breadth",
    "rostral_length",
    "mandible_length",
    "toothrow_length",
]


def make_skulls(n_per_group: int = 15, offsets=(0.0, 4.0, 8.0), seed: int = 42) -> pd.DataFrame:
    """Three populations whose skulls differ mostly in overall size."""
    rng = np.random.default_rng(seed)
    base = np.array([60.0, 35.0, 25.0, 22.0, 45.0, 12.0])
    shape_shift = np.array([0.0, 1.0, -1.0, 0.5, 0.0, -0.5])

    rows = []
    for g, offset in enumerate(offsets):
        size = rng.normal(0, 1.5, n_per_group)
        for i in range(n_per_group):
            values = base + offset + size[i] * base / 30 + g * shape_shift + rng.normal(0, 0.6, len(base))
            rows.append(values)

    df = pd.DataFrame(rows, columns=MEASUREMENTS)
    df.insert(0, "specimen", [f"MVZ{1000 + i}" for i in range(len(df))])
    df["population"] = np.repeat([f"pop_{chr(65 + g)}" for g in range(len(offsets))], n_per_group)
    df["longitude"] = np.repeat([-120.0, -118.5, -117.0][: len(offsets)], n_per_group) + rng.normal(0, 0.2, len(df))
    df["latitude"] = np.repeat([37.0, 38.0, 39.0][: len(offsets)], n_per_group) + rng.normal(0, 0.2, len(df))
    return df


@pytest.fixture
def skulls() -> pd.DataFrame:
    return make_skulls()


@pytest.fixture
def measurements(skulls) -> pd.DataFrame:
    return skulls.set_index("specimen")[MEASUREMENTS]


@pytest.fixture
def populations(skulls) -> pd.Series:
    return skulls.set_index("specimen")["population"]


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")
