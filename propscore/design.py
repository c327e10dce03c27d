"""
Explicit design-matrix construction.

Models in propscore are specified as lists of terms rather than formula
strings. A term is a tuple of column names whose elementwise product forms a
single regressor::

    ("w1",)         # main effect
    ("w1", "w1")    # quadratic
    ("w1", "w2")    # two-way interaction

``design_matrix`` turns a term list into the float matrix handed to
statsmodels, with columns named ``w1``, ``w1:w1``, ``w1:w2``.
"""
from __future__ import annotations

import numpy as np
import pandas as pd

from ._exceptions import InputError

Term = tuple[str, ...]

CONST = "const"

PROPENSITY_TERMS: list[Term] = [("w1",), ("w1", "w1"), ("w2",), ("w1", "w2")]
OUTCOME_TERMS: list[Term] = [("w1",), ("w2",)]


def term_name(term: Term) -> str:
    return ":".join(term)


def term_variables(terms: list[Term]) -> list[str]:
    """Distinct base columns used by ``terms``, in first-seen order."""
    seen: list[str] = []
    for term in terms:
        for var in term:
            if var not in seen:
                seen.append(var)
    return seen


def interact(factor: str, terms: list[Term]) -> list[Term]:
    """
    ``factor`` crossed with ``terms``: the factor's main effect, every term,
    then ``factor`` times every term.
    """
    if any(factor in term for term in terms):
        raise InputError(f"'{factor}' cannot appear in the terms it is crossed with.")
    return [(factor,), *terms, *[(factor, *term) for term in terms]]


def check_columns(data: pd.DataFrame, columns: list[str], stage: str) -> None:
    """Raise ``InputError`` unless every column is present, numeric and finite."""
    missing = [c for c in columns if c not in data.columns]
    if missing:
        raise InputError(
            f"{stage}: required columns not found in dataframe: {missing}. "
            f"Available columns: {sorted(data.columns)}"
        )
    for col in columns:
        try:
            values = data[col].to_numpy(dtype=float)
        except (TypeError, ValueError) as exc:
            raise InputError(f"{stage}: column '{col}' is not numeric.") from exc
        bad = int(np.count_nonzero(~np.isfinite(values)))
        if bad:
            raise InputError(
                f"{stage}: column '{col}' has {bad} missing or non-finite value(s)."
            )


def design_matrix(
    data: pd.DataFrame,
    terms: list[Term],
    intercept: bool = True,
) -> pd.DataFrame:
    """
    Build the regressor matrix for ``terms``.

    Parameters
    ----------
    data : pd.DataFrame
        Must contain every column named by ``terms``.
    terms : list of Term
        Regressors in output order. Duplicate terms are rejected.
    intercept : bool
        Prepend a ``const`` column of ones.

    Raises
    ------
    ``InputError``
        If a referenced column is missing or holds non-finite values.
    """
    names = [term_name(t) for t in terms]
    if len(set(names)) != len(names):
        raise InputError(f"Duplicate terms in model specification: {names}")
    check_columns(data, term_variables(terms), stage="design matrix")

    columns: dict[str, np.ndarray] = {}
    if intercept:
        columns[CONST] = np.ones(len(data))
    for term, name in zip(terms, names):
        col = np.ones(len(data))
        for var in term:
            col = col * data[var].to_numpy(dtype=float)
        columns[name] = col
    return pd.DataFrame(columns, index=data.index)
