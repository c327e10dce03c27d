"""
Optimal full matching.

Every exposed and unexposed record is placed in a matched set holding either
one exposed record with one or more unexposed records, or one unexposed
record with one or more exposed records, so that the total within-set
distance is minimal.

With non-negative distances this is a minimum-weight edge cover of the
complete bipartite graph between the groups (the optimal cover is a forest
of stars, one star per matched set). It reduces to an assignment problem:
with ``m(v)`` the distance from ``v`` to its nearest admissible partner,

    cover cost = sum_v m(v) + min over matchings M of
                 sum_{(i, j) in M} [d(i, j) - m(i) - m(j)]

so we solve a rectangular assignment on the reduced costs (only negative
entries are worth taking), keep the improving pairs, and connect every
still-uncovered record to its nearest partner. Matched sets are the
connected components of the resulting edges.
"""
from __future__ import annotations

import logging

import numpy as np
import pandas as pd
from scipy.optimize import linear_sum_assignment
from scipy.sparse import coo_matrix
from scipy.sparse.csgraph import connected_components
from scipy.spatial.distance import cdist

from .._exceptions import InputError
from ..design import check_columns
from ..propensity import EXPOSURE
from ._base import SUBCLASS, WEIGHT, AdjustmentResult, require_scores, subclass_weights

logger = logging.getLogger(__name__)

DISTANCES = ("propensity", "mahalanobis")
DEFAULT_COVARIATES = ("w1", "w2")


# ── Private helpers ────────────────────────────────────────────────────────────

def _distance_matrix(
    data: pd.DataFrame,
    exposed: np.ndarray,
    scores: np.ndarray,
    distance: str,
    covariates: list[str],
) -> np.ndarray:
    """Distances between every exposed (rows) and unexposed (columns) record."""
    if distance == "propensity":
        return np.abs(scores[exposed][:, None] - scores[~exposed][None, :])

    check_columns(data, covariates, stage="full matching")
    X = data[covariates].to_numpy(dtype=float)
    cov = np.atleast_2d(np.cov(X, rowvar=False))
    VI = np.linalg.pinv(cov)
    return cdist(X[exposed], X[~exposed], metric="mahalanobis", VI=VI)


def _min_edge_cover(dist: np.ndarray, admissible: np.ndarray) -> list[tuple[int, int]]:
    """
    Minimum-weight edge cover of the bipartite graph restricted to
    ``admissible`` pairs. Rows or columns with no admissible pair stay
    uncovered. Returns ``(row, col)`` edges.
    """
    n_rows, n_cols = dist.shape
    masked = np.where(admissible, dist, np.inf)
    row_min = masked.min(axis=1) if n_cols else np.full(n_rows, np.inf)
    col_min = masked.min(axis=0) if n_rows else np.full(n_cols, np.inf)

    reduced = np.where(
        admissible,
        masked - np.where(np.isfinite(row_min), row_min, 0.0)[:, None]
               - np.where(np.isfinite(col_min), col_min, 0.0)[None, :],
        0.0,
    )
    cost = np.minimum(reduced, 0.0)

    edges: list[tuple[int, int]] = []
    row_covered = np.zeros(n_rows, dtype=bool)
    col_covered = np.zeros(n_cols, dtype=bool)

    rows, cols = linear_sum_assignment(cost)
    for i, j in zip(rows, cols):
        if cost[i, j] < 0:
            edges.append((int(i), int(j)))
            row_covered[i] = True
            col_covered[j] = True

    for i in np.flatnonzero(~row_covered & np.isfinite(row_min)):
        edges.append((int(i), int(np.argmin(masked[i]))))
    for j in np.flatnonzero(~col_covered & np.isfinite(col_min)):
        edges.append((int(np.argmin(masked[:, j])), int(j)))
    return edges


def _matched_sets(edges: list[tuple[int, int]], n_rows: int, n_cols: int) -> np.ndarray:
    """
    Label rows then columns with their matched set (1, 2, ...) numbered in
    order of first appearance; uncovered nodes get NaN.
    """
    n = n_rows + n_cols
    labels = np.full(n, np.nan)
    if not edges:
        return labels
    r = np.array([e[0] for e in edges])
    c = np.array([e[1] for e in edges]) + n_rows
    graph = coo_matrix((np.ones(len(edges)), (r, c)), shape=(n, n))
    _, component = connected_components(graph, directed=False)

    covered = np.zeros(n, dtype=bool)
    covered[r] = True
    covered[c] = True
    renumber: dict[int, int] = {}
    for node in np.flatnonzero(covered):
        renumber.setdefault(int(component[node]), len(renumber) + 1)
        labels[node] = renumber[int(component[node])]
    return labels


# ── Result ─────────────────────────────────────────────────────────────────────

class FullMatchingResult(AdjustmentResult):
    """
    Population grouped into matched sets.

    ``subclass`` identifies the matched set (NaN for records left unmatched
    by a caliper) and ``weight`` holds ``n_set / n_set,group``, 0 for
    unmatched records.
    """

    method = "full matching"

    def __init__(self, data: pd.DataFrame, total_distance: float, distance: str) -> None:
        super().__init__(data, cluster=SUBCLASS)
        self._total_distance = total_distance
        self._distance = distance

    @property
    def set_sizes(self) -> pd.DataFrame:
        """Exposed and unexposed counts per matched set."""
        matched = self._data.dropna(subset=[SUBCLASS])
        return pd.crosstab(matched[SUBCLASS].astype(int), matched[EXPOSURE])

    @property
    def n_sets(self) -> int:
        return int(self._data[SUBCLASS].nunique())

    @property
    def n_unmatched(self) -> int:
        return int(self._data[SUBCLASS].isna().sum())

    @property
    def total_distance(self) -> float:
        """Sum of distances over the edges forming the matched sets."""
        return self._total_distance

    def _detail_lines(self) -> list[str]:
        return [
            f"  Distance             : {self._distance}",
            f"  Matched sets         : {self.n_sets:>10d}",
            f"  Unmatched records    : {self.n_unmatched:>10d}",
            f"  Total distance       : {self._total_distance:>10.4f}",
        ]


# ── Estimator ──────────────────────────────────────────────────────────────────

class FullMatching:
    """
    Optimal full matching on the propensity score or on confounders.

    Parameters
    ----------
    distance : str
        ``"propensity"`` (absolute score difference) or ``"mahalanobis"``
        (on ``covariates``, using the full-sample covariance).
    caliper : float or None
        Largest admissible distance between an exposed and an unexposed
        record in the same set. Records with no admissible partner are left
        unmatched with weight 0.
    covariates : list of str
        Columns for the Mahalanobis distance.

    Example::

        matched = FullMatching().fit(scored)
        print(matched.set_sizes.head())
    """

    def __init__(
        self,
        distance: str = "propensity",
        caliper: float | None = None,
        covariates: list[str] | None = None,
    ) -> None:
        if distance not in DISTANCES:
            raise InputError(f"distance must be one of {DISTANCES}, got {distance!r}.")
        if caliper is not None and not caliper > 0:
            raise InputError(f"caliper must be positive, got {caliper!r}.")
        self._distance = distance
        self._caliper = caliper
        self._covariates = list(DEFAULT_COVARIATES if covariates is None else covariates)

    def fit(self, data: pd.DataFrame) -> FullMatchingResult:
        """
        Form matched sets and assign ``subclass`` and ``weight``.

        Raises
        ------
        ``InputError``
            If scores (or Mahalanobis covariates) are missing or non-finite,
            or the caliper leaves no admissible pair at all.
        """
        exposure, scores = require_scores(data, stage="full matching")
        exposed = exposure == 1
        exposed_idx = np.flatnonzero(exposed)
        unexposed_idx = np.flatnonzero(~exposed)

        dist = _distance_matrix(data, exposed, scores, self._distance, self._covariates)
        admissible = np.ones(dist.shape, dtype=bool)
        if self._caliper is not None:
            admissible = dist <= self._caliper
            if not admissible.any():
                raise InputError(
                    f"No exposed/unexposed pair lies within the caliper of {self._caliper}."
                )

        edges = _min_edge_cover(dist, admissible)
        labels = _matched_sets(edges, len(exposed_idx), len(unexposed_idx))

        subclass = np.full(len(data), np.nan)
        subclass[exposed_idx] = labels[:len(exposed_idx)]
        subclass[unexposed_idx] = labels[len(exposed_idx):]
        total = float(sum(dist[i, j] for i, j in edges))

        annotated = data.assign(**{
            SUBCLASS: subclass,
            WEIGHT:   subclass_weights(exposure, subclass),
        })
        result = FullMatchingResult(annotated, total, self._distance)
        logger.info(
            "Full matching (%s): %d matched sets, %d unmatched records, total distance %.4f",
            self._distance, result.n_sets, result.n_unmatched, total,
        )
        if result.n_unmatched:
            logger.warning(
                "%d record(s) have no partner within the caliper and get weight 0",
                result.n_unmatched,
            )
        return result
