"""Titanic CSV loading and train/held-out splitting."""
from __future__ import annotations
import logging
from typing import Sequence

import pandas as pd
from sklearn.model_selection import train_test_split

from .schema import TITANIC_SCHEMA, Record

logger = logging.getLogger(__name__)

# positional layout of the passenger file
TITANIC_COLUMNS = [
    "passenger_id", "survived", "pclass", "name", "sex", "age",
    "sibsp", "parch", "ticket", "fare", "cabin", "embarked",
]
NUMERIC_COLUMNS = ["pclass", "age", "sibsp", "parch", "fare"]


def load_titanic(path_or_buffer) -> list[Record]:
    """
    Read passenger records from a Titanic-style CSV.

    The header line is skipped and quoted fields may contain commas.  Columns
    are taken by position (see ``TITANIC_COLUMNS``); rows with fewer fields
    are skipped and fields past the last one are ignored.  Missing or malformed
    numeric fields become absent values; an empty port of embarkation becomes
    ``"U"``, any other port is reduced to its first character.  Rows whose
    survival label cannot be parsed are skipped.

    Parameters
    ----------
    path_or_buffer : str, path-like or file-like
        Anything :func:`pandas.read_csv` accepts.

    Returns
    -------
    list[Record]
        Records laid out according to :data:`~giniforest.schema.TITANIC_SCHEMA`.

    Raises
    ------
    ValueError
        If the header has fewer than ``len(TITANIC_COLUMNS)`` columns.
    """
    n_cols = len(TITANIC_COLUMNS)
    # usecols drops fields past the last column; short rows are padded with
    # NaN, while an empty field reads as ""
    df = pd.read_csv(path_or_buffer, dtype=str, keep_default_na=False, index_col=False,
                     usecols=list(range(n_cols)), engine="python")
    df.columns = TITANIC_COLUMNS

    short = df["embarked"].isna()
    if short.any():
        logger.warning("skipped %d rows with fewer than %d fields", int(short.sum()), n_cols)
        df = df[~short]

    survived = pd.to_numeric(df["survived"].str.strip(), errors="coerce")
    keep = survived.notna()
    if not keep.all():
        logger.warning("skipped %d rows with an unreadable survival label", int((~keep).sum()))
    df = df[keep].copy()
    survived = survived[keep]

    for col in NUMERIC_COLUMNS:
        df[col] = pd.to_numeric(df[col].str.strip(), errors="coerce")
    df["embarked"] = df["embarked"].str.strip().str[:1]

    records = [
        TITANIC_SCHEMA.record(
            label=int(label) == 1,
            pclass=row.pclass, sex=row.sex.strip(), age=row.age, sibsp=row.sibsp,
            parch=row.parch, fare=row.fare, embarked=row.embarked,
        )
        for label, row in zip(survived, df.itertuples(index=False))
    ]
    logger.info("loaded %d passenger records", len(records))
    return records


def split_dataset(records: Sequence[Record], test_size: float = 0.2,
                  random_state=None) -> tuple[list[Record], list[Record]]:
    """Shuffle ``records`` and split them into ``(train, held_out)``."""
    records = list(records)
    train, test = train_test_split(records, test_size=test_size,
                                   shuffle=True, random_state=random_state)
    return list(train), list(test)
