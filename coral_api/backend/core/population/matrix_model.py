"""
Lefkovitch (size-classified) matrix population model.

The projection matrix ``A`` maps class abundances from one year to the next:
``n(t+1) = A n(t)``. Columns are the *source* class, rows the *destination*
class, and ``A[i, j] = s_j * G[i, j]`` where ``s_j`` is annual survival of
class ``j`` and ``G[i, j]`` the probability that a surviving colony of class
``j`` ends the year in class ``i``.

Asymptotic analysis follows Caswell (2001):

- λ, the dominant eigenvalue, is the long-run population growth rate.
- The right eigenvector ``w`` is the stable size distribution.
- The left eigenvector ``v`` holds the reproductive values.
- Sensitivities are ``S = v wᵀ / ⟨v, w⟩``.
- Elasticities are ``E = (A / λ) ∘ S``, which sum to one.

References:
    - Caswell, H. (2001). Matrix Population Models, 2nd ed. Sinauer.
    - de Kroon, H. et al. (1986). Elasticity: the relative contribution of
      demographic parameters to population growth rate. Ecology 67(5).
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from coral_api.backend.core.stats.size_classes import SIZE_CLASSES, classify, normalize_breaks

logger = logging.getLogger(__name__)

CATEGORY_BY_TYPE = {"stasis": "Survival", "growth": "Growth", "shrinkage": "Shrinkage"}


def classify_transition(row: int, col: int) -> str:
    """``stasis`` on the diagonal, ``growth`` below it, ``shrinkage`` above it."""
    if row == col:
        return "stasis"
    if row > col:
        return "growth"
    return "shrinkage"


def transition_category(row: int, col: int) -> str:
    """
    Management category of matrix entry ``(row, col)``.

    Shrinkage that lands in the smallest class is treated as asexual
    reproduction through fragmentation.
    """
    kind = classify_transition(row, col)
    if kind == "shrinkage" and row == 0:
        return "Reproduction"
    return CATEGORY_BY_TYPE[kind]


def reliability_label(n: int) -> str:
    if n >= 30:
        return "High"
    if n >= 10:
        return "Moderate"
    if n >= 1:
        return "Low"
    return "None"


@dataclass
class MatrixAnalysis:
    """Eigen-analysis of a projection matrix."""

    lambda_: float
    stable_stage: np.ndarray
    reproductive_value: np.ndarray
    sensitivity: np.ndarray
    elasticity: np.ndarray

    @property
    def total_elasticity(self) -> float:
        return float(self.elasticity.sum())


def _dominant(values: np.ndarray) -> int:
    return int(np.argmax(np.abs(values)))


def dominant_eigenvalue(matrix: np.ndarray) -> float:
    """Real part of the eigenvalue with the largest modulus."""
    values = np.linalg.eigvals(np.asarray(matrix, dtype=float))
    return float(np.real(values[_dominant(values)]))


def validate_matrix(matrix: np.ndarray) -> np.ndarray:
    """
    Check that ``matrix`` is a usable projection matrix.

    Raises:
        ValueError: For non-square, non-finite or negative matrices.
    """
    A = np.asarray(matrix, dtype=float)
    if A.ndim != 2 or A.shape[0] != A.shape[1]:
        raise ValueError(f"Projection matrix must be square, got shape {A.shape}")
    if not np.all(np.isfinite(A)):
        raise ValueError("Projection matrix contains non-finite entries")
    if np.any(A < 0):
        raise ValueError("Projection matrix entries must be non-negative")
    return A


@dataclass
class LefkovitchModel:
    """
    Size-classified projection matrix with its class labels.

    Attributes:
        matrix: Square projection matrix, columns = source, rows = destination
        size_classes: Class labels in matrix order
        survival: Per-class annual survival used to build the matrix (if known)
        warnings: Notes about classes estimated with missing data
    """

    matrix: np.ndarray
    size_classes: list[str] = field(default_factory=lambda: list(SIZE_CLASSES))
    survival: np.ndarray | None = None
    warnings: list[str] = field(default_factory=list)

    def __post_init__(self):
        self.matrix = validate_matrix(self.matrix)
        if len(self.size_classes) != self.matrix.shape[0]:
            raise ValueError("Number of size classes must match matrix dimension")

    # ── Construction ──────────────────────────────────────────────────────

    @classmethod
    def from_frame(cls, frame: pd.DataFrame) -> LefkovitchModel:
        """Build from a labelled matrix (row index = destination classes)."""
        frame = frame.copy()
        frame.columns = [str(c) for c in frame.columns]
        frame.index = [str(r) for r in frame.index]
        labels = list(frame.columns)
        if set(labels) <= set(frame.index):
            frame = frame.loc[labels, labels]
        return cls(matrix=frame.to_numpy(dtype=float), size_classes=labels)

    @classmethod
    def from_records(
        cls,
        survival: pd.DataFrame,
        growth: pd.DataFrame,
        breaks: Sequence[float] | None = None,
        quiet: bool = False,
    ) -> tuple[LefkovitchModel, pd.DataFrame]:
        """
        Estimate the matrix from individual survival and growth records.

        Args:
            survival: Records with ``size_cm2`` and 0/1 ``survived``
            growth: Records with ``size_cm2`` and ``growth_cm2_yr``
            breaks: Size-class breaks (standard SC1-SC5 by default)
            quiet: Keep the fallback notes on the model without logging them

        Returns:
            The model and a long table of per-transition sample sizes

        Raises:
            ValueError: If no class has survival data or the breaks are invalid
        """
        breaks, labels = normalize_breaks(breaks)
        k = len(labels)

        surv = survival.loc[survival["size_cm2"].notna() & survival["survived"].notna()]
        surv_class = classify(surv["size_cm2"], breaks).values
        if not len(surv):
            raise ValueError("No survival records available to estimate the matrix")
        overall = float(surv["survived"].mean())

        s = np.zeros(k)
        n_surv = np.zeros(k, dtype=int)
        notes: list[str] = []
        for j, label in enumerate(labels):
            outcomes = surv["survived"].to_numpy()[surv_class == label]
            n_surv[j] = len(outcomes)
            if len(outcomes):
                s[j] = float(np.mean(outcomes))
            else:
                s[j] = overall
                notes.append(f"No survival records for {label}; pooled survival ({overall:.3f}) used")

        grw = growth.loc[growth["size_cm2"].notna() & growth["growth_cm2_yr"].notna()]
        start = classify(grw["size_cm2"], breaks).values
        final = classify(np.maximum(1.0, grw["size_cm2"].to_numpy() + grw["growth_cm2_yr"].to_numpy()), breaks).values

        counts = np.zeros((k, k), dtype=int)
        index = {label: i for i, label in enumerate(labels)}
        for a, b in zip(start, final):
            if a in index and b in index:
                counts[index[b], index[a]] += 1

        G = np.zeros((k, k))
        for j, label in enumerate(labels):
            column_total = counts[:, j].sum()
            if column_total:
                G[:, j] = counts[:, j] / column_total
            else:
                G[j, j] = 1.0
                notes.append(f"No growth records for {label}; survivors assumed to remain in class")

        A = G * s[np.newaxis, :]
        if not quiet:
            for note in notes:
                logger.warning(note)

        model = cls(matrix=A, size_classes=labels, survival=s, warnings=notes)

        rows = []
        for i in range(k):
            for j in range(k):
                n_obs = int(counts[i, j])
                rows.append(
                    {
                        # Row (destination) first, column (source) second.
                        "from_class": labels[i],
                        "to_class": labels[j],
                        "n_observations": n_obs,
                        "n_source": int(counts[:, j].sum()),
                        "n_survival": int(n_surv[j]),
                        "reliability": reliability_label(n_obs),
                        "transition_value": float(A[i, j]),
                    }
                )
        return model, pd.DataFrame(rows)

    # ── Eigen-analysis ────────────────────────────────────────────────────

    def dominant_eigenvalue(self) -> float:
        return dominant_eigenvalue(self.matrix)

    def analyze(self) -> MatrixAnalysis:
        """
        Compute λ, stable stage, reproductive value, sensitivity and elasticity.

        Raises:
            ValueError: If the dominant eigenvalue is not positive
        """
        A = self.matrix
        values, right = np.linalg.eig(A)
        idx = _dominant(values)
        lam = float(np.real(values[idx]))
        if lam <= 0:
            raise ValueError("Dominant eigenvalue must be positive for elasticity analysis")

        w = np.abs(np.real(right[:, idx]))
        w = w / w.sum()

        lvalues, left = np.linalg.eig(A.T)
        v = np.abs(np.real(left[:, _dominant(lvalues)]))
        v = v / v[0] if v[0] > 1e-12 else v / v.sum()

        S = np.outer(v, w) / float(v @ w)
        E = (A / lam) * S
        return MatrixAnalysis(
            lambda_=lam,
            stable_stage=w,
            reproductive_value=v,
            sensitivity=S,
            elasticity=E,
        )

    def elasticity_by_category(self, elasticity: np.ndarray | None = None) -> dict[str, float]:
        """Summed elasticity of stasis, growth, shrinkage and fragmentation entries."""
        E = self.analyze().elasticity if elasticity is None else elasticity
        totals = {"stasis": 0.0, "growth": 0.0, "shrinkage": 0.0, "fragmentation": 0.0}
        k = E.shape[0]
        for i in range(k):
            for j in range(k):
                category = transition_category(i, j)
                key = {
                    "Survival": "stasis",
                    "Growth": "growth",
                    "Shrinkage": "shrinkage",
                    "Reproduction": "fragmentation",
                }[category]
                totals[key] += float(E[i, j])
        return totals

    def generation_time(self) -> float | None:
        """
        Generation time ``log(R0) / log(λ)``.

        Fragmentation entries (shrinkage into the smallest class) play the role
        of fecundity ``F``; the remaining entries form ``T``. ``R0`` is the
        dominant eigenvalue of ``F (I - T)⁻¹``. Returns ``None`` when the
        quantity is undefined (no fragmentation, λ = 1, singular ``I - T``).
        """
        A = self.matrix
        k = A.shape[0]
        F = np.zeros_like(A)
        F[0, 1:] = A[0, 1:]
        if not F.any():
            return None
        T = A - F
        try:
            N = np.linalg.inv(np.eye(k) - T)
        except np.linalg.LinAlgError:
            return None
        r0 = dominant_eigenvalue(F @ N)
        lam = self.dominant_eigenvalue()
        if r0 <= 0 or lam <= 0 or abs(np.log(lam)) < 1e-12:
            return None
        gt = float(np.log(r0) / np.log(lam))
        return gt if np.isfinite(gt) and gt > 0 else None

    # ── Export ────────────────────────────────────────────────────────────

    def to_frame(self, values: np.ndarray | None = None) -> pd.DataFrame:
        """Labelled matrix frame (rows = destination), for CSV output."""
        data = self.matrix if values is None else values
        return pd.DataFrame(data, index=self.size_classes, columns=self.size_classes)

    def to_long(self, elasticity: np.ndarray | None = None) -> pd.DataFrame:
        E = self.analyze().elasticity if elasticity is None else elasticity
        rows = []
        for i, dest in enumerate(self.size_classes):
            for j, src in enumerate(self.size_classes):
                rows.append(
                    {
                        "from_class": dest,
                        "to_class": src,
                        "transition_value": float(self.matrix[i, j]),
                        "elasticity": float(E[i, j]),
                        "transition_type": classify_transition(i, j),
                        "category": transition_category(i, j),
                    }
                )
        return pd.DataFrame(rows)
