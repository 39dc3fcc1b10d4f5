"""Monocular map initialisation from two views by homography or fundamental matrix."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .twoview import (
    check_rt,
    compute_f21,
    compute_h21,
    decompose_essential,
    normalize,
)

_TH_HOMOGRAPHY = 5.991
_TH_FUNDAMENTAL = 3.841
_TH_SCORE = 5.991
_MIN_SAMPLE = 8


@dataclass
class Reconstruction:
    """Relative motion of the second view and the triangulated points."""

    rotation: np.ndarray
    translation: np.ndarray
    points3d: np.ndarray
    triangulated: list[bool]


def _coords(keys: Sequence) -> np.ndarray:
    rows = []
    for key in keys:
        if hasattr(key, "x") and hasattr(key, "y"):
            rows.append((float(key.x), float(key.y)))
        else:
            x, y = key
            rows.append((float(x), float(y)))
    return np.array(rows, dtype=np.float64).reshape(-1, 2)


def _transform(H: np.ndarray, points: np.ndarray) -> np.ndarray:
    homogeneous = np.column_stack([points, np.ones(len(points))]) @ H.T
    return homogeneous[:, :2] / homogeneous[:, 2:3]


class Initializer:
    """Estimates the initial relative pose between a reference and a current view."""

    def __init__(self, reference_keys, K, sigma=1.0, iterations=200):
        self.K = np.array(K, dtype=np.float64)
        self.keys1 = list(reference_keys)
        self.sigma = float(sigma)
        self.sigma2 = self.sigma * self.sigma
        self.max_iterations = int(iterations)
        self.keys2: list = []
        self.matches: list[tuple[int, int]] = []
        self.matched1: list[bool] = [False] * len(self.keys1)
        self.sets: list[list[int]] = []
        self._p1 = np.zeros((0, 2))
        self._p2 = np.zeros((0, 2))

    def initialize(self, current_keys, matches12) -> Optional[Reconstruction]:
        """Reconstruct the scene from matches of reference keypoints to current ones.

        ``matches12`` gives for every reference keypoint the index of its match
        in ``current_keys`` or a negative value when it has none. Returns
        ``None`` when no reliable reconstruction is found.
        """
        self.keys2 = list(current_keys)
        matches = list(matches12)
        self.matches = [(i, int(j)) for i, j in enumerate(matches) if j >= 0]
        self.matched1 = [False] * len(self.keys1)
        for i, j in enumerate(matches):
            if i < len(self.matched1):
                self.matched1[i] = j >= 0
        if len(self.matches) < _MIN_SAMPLE:
            raise ValueError(f"need at least {_MIN_SAMPLE} matches to initialise")

        first = [i for i, _ in self.matches]
        second = [j for _, j in self.matches]
        self._p1 = _coords(self.keys1)[first]
        self._p2 = _coords(self.keys2)[second]

        rng = np.random.default_rng(0)
        n = len(self.matches)
        self.sets = [
            [int(i) for i in rng.choice(n, _MIN_SAMPLE, replace=False)]
            for _ in range(self.max_iterations)
        ]

        inliers_h, score_h, H = self.find_homography()
        inliers_f, score_f, F = self.find_fundamental()

        total = score_h + score_f
        ratio = score_h / total if total > 0 else float("nan")
        if ratio > 0.40:
            if H is None:
                return None
            return self.reconstruct_h(inliers_h, H, 1.0, 50)
        if F is None:
            return None
        return self.reconstruct_f(inliers_f, F, 1.0, 50)

    def _normalized_samples(self):
        pn1, T1 = normalize(self.keys1)
        pn2, T2 = normalize(self.keys2)
        first = np.array([i for i, _ in self.matches])
        second = np.array([j for _, j in self.matches])
        for sample in self.sets:
            idx = np.array(sample)
            yield pn1[first[idx]], pn2[second[idx]], T1, T2

    def find_homography(self) -> tuple[list[bool], float, Optional[np.ndarray]]:
        """RANSAC over the sample sets for the best-scoring homography H21."""
        best_score = 0.0
        best_inliers = [False] * len(self.matches)
        best_H: Optional[np.ndarray] = None
        for s1, s2, T1, T2 in self._normalized_samples():
            Hn = compute_h21(s1, s2)
            try:
                H21 = np.linalg.inv(T2) @ Hn @ T1
                H12 = np.linalg.inv(H21)
            except np.linalg.LinAlgError:
                continue
            score, inliers = self.check_homography(H21, H12, self.sigma)
            if score > best_score:
                best_score, best_inliers, best_H = score, inliers, H21.copy()
        return best_inliers, best_score, best_H

    def find_fundamental(self) -> tuple[list[bool], float, Optional[np.ndarray]]:
        """RANSAC over the sample sets for the best-scoring fundamental matrix F21."""
        best_score = 0.0
        best_inliers = [False] * len(self.matches)
        best_F: Optional[np.ndarray] = None
        for s1, s2, T1, T2 in self._normalized_samples():
            F21 = T2.T @ compute_f21(s1, s2) @ T1
            score, inliers = self.check_fundamental(F21, self.sigma)
            if score > best_score:
                best_score, best_inliers, best_F = score, inliers, F21.copy()
        return best_inliers, best_score, best_F

    def check_homography(self, H21, H12, sigma) -> tuple[float, list[bool]]:
        """Symmetric transfer score of a homography and its inlier flags."""
        inv_sigma2 = 1.0 / (sigma * sigma)
        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            p2in1 = _transform(np.asarray(H12, dtype=np.float64), self._p2)
            p1in2 = _transform(np.asarray(H21, dtype=np.float64), self._p1)
            chi1 = np.sum((self._p1 - p2in1) ** 2, axis=1) * inv_sigma2
            chi2 = np.sum((self._p2 - p1in2) ** 2, axis=1) * inv_sigma2
            ok1 = ~(chi1 > _TH_HOMOGRAPHY)
            ok2 = ~(chi2 > _TH_HOMOGRAPHY)
            score = float(
                np.sum(_TH_HOMOGRAPHY - chi1[ok1]) + np.sum(_TH_HOMOGRAPHY - chi2[ok2])
            )
        return score, [bool(v) for v in ok1 & ok2]

    def check_fundamental(self, F21, sigma) -> tuple[float, list[bool]]:
        """Symmetric epipolar-distance score of a fundamental matrix and its inliers."""
        F = np.asarray(F21, dtype=np.float64)
        inv_sigma2 = 1.0 / (sigma * sigma)
        h1 = np.column_stack([self._p1, np.ones(len(self._p1))])
        h2 = np.column_stack([self._p2, np.ones(len(self._p2))])
        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            lines2 = h1 @ F.T
            num2 = np.sum(lines2 * h2, axis=1)
            chi1 = num2**2 / (lines2[:, 0] ** 2 + lines2[:, 1] ** 2) * inv_sigma2
            lines1 = h2 @ F
            num1 = np.sum(lines1 * h1, axis=1)
            chi2 = num1**2 / (lines1[:, 0] ** 2 + lines1[:, 1] ** 2) * inv_sigma2
            ok1 = ~(chi1 > _TH_FUNDAMENTAL)
            ok2 = ~(chi2 > _TH_FUNDAMENTAL)
            score = float(
                np.sum(_TH_SCORE - chi1[ok1]) + np.sum(_TH_SCORE - chi2[ok2])
            )
        return score, [bool(v) for v in ok1 & ok2]

    def _check(self, R, t, inliers):
        return check_rt(
            R, t, self.keys1, self.keys2, self.matches, inliers, self.K, 4.0 * self.sigma2
        )

    def reconstruct_f(
        self, inliers, F21, min_parallax, min_triangulated
    ) -> Optional[Reconstruction]:
        """Pick the one of four motions from F21 that triangulates most points."""
        inliers = list(inliers)
        n = sum(1 for flag in inliers if flag)
        E = self.K.T @ np.asarray(F21, dtype=np.float64) @ self.K
        R1, R2, t = decompose_essential(E)
        hypotheses = [(R1, t), (R2, t), (R1, -t), (R2, -t)]
        results = [self._check(R, tt, inliers) for R, tt in hypotheses]
        goods = [result[0] for result in results]
        max_good = max(goods)
        min_good = max(int(0.9 * n), min_triangulated)
        similar = sum(1 for good in goods if good > 0.7 * max_good)
        if max_good < min_good or similar > 1:
            return None
        best = goods.index(max_good)
        _, points3d, triangulated, parallax = results[best]
        if parallax > min_parallax:
            R, tt = hypotheses[best]
            return Reconstruction(R.copy(), tt.copy(), points3d, triangulated)
        return None

    def reconstruct_h(
        self, inliers, H21, min_parallax, min_triangulated
    ) -> Optional[Reconstruction]:
        """Pick the one of eight motions from H21 that triangulates most points."""
        inliers = list(inliers)
        n = sum(1 for flag in inliers if flag)
        A = np.linalg.inv(self.K) @ np.asarray(H21, dtype=np.float64) @ self.K
        U, w, Vt = np.linalg.svd(A, full_matrices=True)
        s = np.linalg.det(U) * np.linalg.det(Vt)
        d1, d2, d3 = (float(v) for v in w)
        with np.errstate(divide="ignore", invalid="ignore"):
            if np.float64(d1) / d2 < 1.00001 or np.float64(d2) / d3 < 1.00001:
                return None

        aux1 = np.sqrt((d1 * d1 - d2 * d2) / (d1 * d1 - d3 * d3))
        aux3 = np.sqrt((d2 * d2 - d3 * d3) / (d1 * d1 - d3 * d3))
        x1 = [aux1, aux1, -aux1, -aux1]
        x3 = [aux3, -aux3, aux3, -aux3]
        root = np.sqrt((d1 * d1 - d2 * d2) * (d2 * d2 - d3 * d3))

        hypotheses = []
        ctheta = (d2 * d2 + d1 * d3) / ((d1 + d3) * d2)
        aux_s = root / ((d1 + d3) * d2)
        for st, a, c in zip([aux_s, -aux_s, -aux_s, aux_s], x1, x3):
            Rp = np.eye(3)
            Rp[0, 0], Rp[0, 2], Rp[2, 0], Rp[2, 2] = ctheta, -st, st, ctheta
            t = U @ (np.array([a, 0.0, -c]) * (d1 - d3))
            hypotheses.append((s * U @ Rp @ Vt, t / np.linalg.norm(t)))

        cphi = (d1 * d3 - d2 * d2) / ((d1 - d3) * d2)
        aux_s = root / ((d1 - d3) * d2)
        for sp, a, c in zip([aux_s, -aux_s, -aux_s, aux_s], x1, x3):
            Rp = np.eye(3)
            Rp[0, 0], Rp[0, 2], Rp[1, 1], Rp[2, 0], Rp[2, 2] = cphi, sp, -1.0, sp, -cphi
            t = U @ (np.array([a, 0.0, c]) * (d1 + d3))
            hypotheses.append((s * U @ Rp @ Vt, t / np.linalg.norm(t)))

        best_good = 0
        second_good = 0
        best_index = -1
        best_parallax = -1.0
        best_points = None
        best_triangulated: list[bool] = []
        for index, (R, t) in enumerate(hypotheses):
            n_good, points3d, triangulated, parallax = self._check(R, t, inliers)
            if n_good > best_good:
                second_good = best_good
                best_good = n_good
                best_index = index
                best_parallax = parallax
                best_points = points3d
                best_triangulated = triangulated
            elif n_good > second_good:
                second_good = n_good

        if (
            second_good < 0.75 * best_good
            and best_parallax >= min_parallax
            and best_good > min_triangulated
            and best_good > 0.9 * n
        ):
            R, t = hypotheses[best_index]
            return Reconstruction(R.copy(), t.copy(), best_points, best_triangulated)
        return None