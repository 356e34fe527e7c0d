"""
The convex limiter.  Given a provisional admissible state U, a
correction P and an interval [t_min, t_max], find the largest t such
that U + t P satisfies a set of local bounds.

Three families of bounds are available and can be combined freely:

* "rho" -- a local minimum and maximum of the density,
* "specific_entropy" -- a local minimum of the specific entropy,
* "entropy_inequality" -- a Harten-type entropy inequality
  salpha(U + t P) >= a + t b.

Every family defines a convex set of states, hence the admissible t
form an interval containing t_min and each family reduces to a root
find for its right end point.  The result is the minimum over the
families.
"""


import numpy as np

from idpeuler.newton import EPS, quadratic_newton_step
from idpeuler.problem_description import AdmissibilityError


LIMITER_FAMILIES = ("rho", "specific_entropy", "entropy_inequality")


class Bounds:
    """A container for the per-node (or per-lane) limiter bounds

    Parameters
    ----------
    rho_min, rho_max : ndarray
        bounds on the density.
    s_min : ndarray
        lower bound on the specific entropy.
    salpha_avg : ndarray, optional
        the constant part a of the entropy inequality.
    salpha_flux : ndarray, optional
        the slope b of the entropy inequality.
    """

    def __init__(self, *, rho_min, rho_max, s_min, salpha_avg=None, salpha_flux=None):
        self.rho_min = np.asarray(rho_min, dtype=np.float64)
        self.rho_max = np.asarray(rho_max, dtype=np.float64)
        self.s_min = np.asarray(s_min, dtype=np.float64)

        if salpha_avg is None:
            salpha_avg = np.zeros_like(self.rho_min)
        if salpha_flux is None:
            salpha_flux = np.zeros_like(self.rho_min)

        self.salpha_avg = np.asarray(salpha_avg, dtype=np.float64)
        self.salpha_flux = np.asarray(salpha_flux, dtype=np.float64)

    def __getitem__(self, idx):
        return Bounds(rho_min=self.rho_min[idx], rho_max=self.rho_max[idx],
                      s_min=self.s_min[idx], salpha_avg=self.salpha_avg[idx],
                      salpha_flux=self.salpha_flux[idx])

    def __str__(self):
        return (f"rho: [{self.rho_min}, {self.rho_max}]; s_min: {self.s_min}; "
                f"salpha: {self.salpha_avg} + t {self.salpha_flux}")

    def relax(self, r):
        """return a copy of the bounds widened by the relative amount r"""
        return Bounds(rho_min=(1.0 - r) * self.rho_min,
                      rho_max=(1.0 + r) * self.rho_max,
                      s_min=(1.0 - r) * self.s_min,
                      salpha_avg=(1.0 - r) * self.salpha_avg,
                      salpha_flux=(1.0 - r) * self.salpha_flux)


def local_bounds(graph, problem, U, *, relaxation=0.0):
    """compute the bounds of every node from the states in its
    neighborhood N(i), node i included

    Parameters
    ----------
    graph : Graph
        the connectivity.
    problem : ProblemDescription
        the equation of state.
    U : ndarray
        the (low-order) state of shape (n_nodes, nvar).
    relaxation : float, optional
        relative widening of all bounds.

    Returns
    -------
    Bounds
    """

    rho = problem.density(U)
    s = problem.specific_entropy(U)
    salpha = problem.harten_entropy(U)

    bounds = Bounds(rho_min=graph.neighbor_min(rho),
                    rho_max=graph.neighbor_max(rho),
                    s_min=graph.neighbor_min(s),
                    salpha_avg=graph.neighbor_min(salpha))

    if relaxation > 0.0:
        bounds = bounds.relax(relaxation)

    return bounds


class Limiter:
    """Compute the largest admissible blending factor of a correction

    Parameters
    ----------
    problem : ProblemDescription
        the equation of state.
    families : iterable of str, optional
        the active bound families.
    newton_max_iter : int, optional
        maximal number of Newton steps of the two entropy families.
    newton_eps : float, optional
        relative tolerance on the bracket width of the Newton search.
    check_bounds : bool, optional
        raise an AdmissibilityError when the bounds are already violated
        at t_min instead of silently rejecting the correction.
    """

    def __init__(self, problem, *, families=("rho", "specific_entropy"),
                 newton_max_iter=4, newton_eps=1.e-10, check_bounds=False):

        families = tuple(families)
        for family in families:
            if family not in LIMITER_FAMILIES:
                raise ValueError(f"invalid limiter family {family}")

        if newton_max_iter < 0:
            raise ValueError("newton_max_iter has to be non-negative")

        if newton_eps <= 0.0:
            raise ValueError("newton_eps has to be positive")

        self.problem = problem
        self.families = families
        self.newton_max_iter = newton_max_iter
        self.newton_eps = newton_eps
        self.check_bounds = check_bounds

    def limit(self, bounds, U, P, t_min=0.0, t_max=1.0):
        """return the largest t in [t_min, t_max] such that U + t P
        satisfies all active bounds

        Parameters
        ----------
        bounds : Bounds
            the bounds of every lane.
        U : ndarray
            the provisional state, shape (..., nvar).
        P : ndarray
            the correction, shape (..., nvar).
        t_min, t_max : float or ndarray, optional
            the search interval.

        Returns
        -------
        ndarray
            the limiter value t of every lane.
        """

        U = np.asarray(U, dtype=np.float64)
        P = np.asarray(P, dtype=np.float64)

        lanes = U.shape[:-1]
        t_min = np.broadcast_to(np.asarray(t_min, dtype=np.float64), lanes)
        t_max = np.broadcast_to(np.asarray(t_max, dtype=np.float64), lanes)

        # the entropy families need rho > 0, so they search the density
        # admissible interval only
        if "rho" in self.families:
            t_r, infeasible = self.limit_density(bounds.rho_min, bounds.rho_max,
                                                 U, P, t_min, t_max)
        else:
            positive = np.full(lanes, np.finfo(np.float64).tiny)
            t_r, infeasible = self.limit_density(positive, np.full(lanes, np.inf),
                                                 U, P, t_min, t_max)

        t = t_r

        if "specific_entropy" in self.families:
            t_s, bad = self.limit_specific_entropy(bounds.s_min, U, P, t_min, t_r)
            t = np.minimum(t, t_s)
            infeasible = np.logical_or(infeasible, bad)

        if "entropy_inequality" in self.families:
            t_e, bad = self.limit_entropy_inequality(bounds.salpha_avg, bounds.salpha_flux,
                                                     U, P, t_min, t_r)
            t = np.minimum(t, t_e)
            infeasible = np.logical_or(infeasible, bad)

        if np.any(infeasible):
            if self.check_bounds:
                idx = np.nonzero(infeasible)
                print("limiter bounds are violated at t_min")
                print(f"states = {U[idx]}")
                print(f"bounds = {bounds[idx] if bounds.rho_min.shape == lanes else bounds}")
                raise AdmissibilityError("limiter bounds are violated by the provisional state")
            t = np.where(infeasible, t_min, t)

        return t

    def limit_density(self, rho_min, rho_max, U, P, t_min, t_max):
        """solve rho_min <= rho(U + t P) <= rho_max for the largest t

        Returns
        -------
        t : ndarray
            the largest admissible t.
        infeasible : ndarray
            True where the bounds are violated at t_min already.
        """

        rho = U[..., self.problem.urho]
        P_rho = P[..., self.problem.urho]

        rho_lo = rho + t_min * P_rho
        tol = 8.0 * EPS * np.abs(rho_max)
        infeasible = np.logical_or(rho_lo < rho_min - tol, rho_lo > rho_max + tol)

        rho_hi = rho + t_max * P_rho

        with np.errstate(divide="ignore", invalid="ignore"):
            t = np.where(rho_hi > rho_max, (rho_max - rho) / P_rho, t_max)
            t = np.where(rho_hi < rho_min, (rho_min - rho) / P_rho, t)

        t = np.where(np.isnan(t), t_min, t)
        t = np.minimum(np.maximum(t, t_min), t_max)

        return t, infeasible

    def limit_specific_entropy(self, s_min, U, P, t_min, t_max):
        """solve rho^2 e(U + t P) - s_min rho^(gamma+1) >= 0 for the
        largest t

        The convex function rho(t)^(gamma+1) is replaced by its secant on
        [t_min, t_max], which lies above it.  The resulting quadratic
        under-estimates the constraint, so every t it admits is admissible,
        and its roots are available in closed form.  The root of the
        quadratic is then pushed towards the root of the exact constraint
        with the same bracketing Newton search as the entropy inequality.

        Returns
        -------
        t : ndarray
            the largest admissible t.
        infeasible : ndarray
            True where the bound is violated at t_min already.
        """

        v = self.problem
        gamma = v.gamma

        U_0 = U + t_min[..., np.newaxis] * P
        delta = t_max - t_min

        rho_0 = v.density(U_0)
        m_0 = v.momentum(U_0)
        E_0 = v.total_energy(U_0)

        P_rho = v.density(P)
        P_m = v.momentum(P)
        P_E = v.total_energy(P)

        # rho^2 e(t) = rho E - |m|^2 / 2 = c_0 + c_1 t + c_2 t^2
        c_0 = rho_0 * E_0 - 0.5 * np.sum(m_0 * m_0, axis=-1)
        c_1 = rho_0 * P_E + P_rho * E_0 - np.sum(m_0 * P_m, axis=-1)
        c_2 = P_rho * P_E - 0.5 * np.sum(P_m * P_m, axis=-1)

        g_0 = rho_0**(gamma + 1.0)
        g_1 = np.maximum(rho_0 + delta * P_rho, 0.0)**(gamma + 1.0)
        with np.errstate(divide="ignore", invalid="ignore"):
            secant = np.where(delta > 0.0, (g_1 - g_0) / delta, 0.0)

        A = c_2
        B = c_1 - s_min * secant
        C = c_0 - s_min * g_0

        tol = 100.0 * EPS * (np.abs(rho_0 * E_0) + np.abs(s_min * g_0))
        infeasible = C < -tol
        C = np.maximum(C, 0.0)

        root = _first_descending_root(A, B, C)

        t = t_min + np.minimum(root, delta)
        t = np.minimum(np.maximum(t, t_min), t_max)

        def psi(t):
            W = U + t[..., np.newaxis] * P
            rho = v.density(W)
            m = v.momentum(W)
            return rho * v.total_energy(W) - 0.5 * np.sum(m * m, axis=-1) - \
                s_min * np.maximum(rho, 0.0)**(gamma + 1.0)

        def dpsi(t):
            W = U + t[..., np.newaxis] * P
            rho = v.density(W)
            m = v.momentum(W)
            return P_rho * v.total_energy(W) + rho * P_E - np.sum(m * P_m, axis=-1) - \
                (gamma + 1.0) * s_min * np.maximum(rho, 0.0)**gamma * P_rho

        t_r = np.array(t_max, dtype=np.float64)
        psi_r = psi(t_r)

        done = psi_r >= 0.0
        active = ~done & ~infeasible & (t < t_r)

        if np.any(active):
            psi_l = np.maximum(psi(t), 0.0)
            t_l = self._shrink_bracket(psi, dpsi, t, psi_l, t_r, psi_r, active)
            t = np.where(active, t_l, t)

        t = np.where(done, t_r, t)

        return t, infeasible

    def limit_entropy_inequality(self, salpha_avg, salpha_flux, U, P, t_min, t_max):
        """solve salpha(U + t P) - (a + t b) >= 0 for the largest t

        The left hand side is concave in t.  The root is bracketed by
        [t_l, t_r] with t_l always admissible, and the bracket is shrunk
        with a bounded number of quadratic Newton steps.

        Returns
        -------
        t : ndarray
            the largest admissible t.
        infeasible : ndarray
            True where the inequality is violated at t_min already.
        """

        v = self.problem
        gamma = v.gamma

        def psi(t):
            return v.harten_entropy(U + t[..., np.newaxis] * P) - \
                (salpha_avg + t * salpha_flux)

        def dpsi(t):
            W = U + t[..., np.newaxis] * P
            rho = v.density(W)
            m = v.momentum(W)
            E = v.total_energy(W)
            rho_rho_e = np.maximum(rho * E - 0.5 * np.sum(m * m, axis=-1),
                                   np.finfo(np.float64).tiny)
            d_rho_rho_e = v.density(P) * E + rho * v.total_energy(P) - \
                np.sum(m * v.momentum(P), axis=-1)
            return rho_rho_e**(1.0 / (gamma + 1.0) - 1.0) * d_rho_rho_e / (gamma + 1.0) - \
                salpha_flux

        t_l = np.array(t_min, dtype=np.float64)
        t_r = np.array(t_max, dtype=np.float64)

        psi_l = psi(t_l)
        psi_r = psi(t_r)

        tol = 100.0 * EPS * np.abs(salpha_avg)
        infeasible = psi_l < -tol
        psi_l = np.maximum(psi_l, 0.0)

        done = psi_r >= 0.0
        active = np.logical_not(np.logical_or(done, infeasible))

        t_l = self._shrink_bracket(psi, dpsi, t_l, psi_l, t_r, psi_r, active)

        t = np.where(done, t_r, t_l)
        return t, infeasible

    def _shrink_bracket(self, psi, dpsi, t_l, psi_l, t_r, psi_r, active):
        """shrink [t_l, t_r] around the right end of {t : psi(t) >= 0}
        with psi(t_l) >= 0 > psi(t_r), and return the new t_l

        A quadratic Newton candidate is only accepted on the side where
        psi has the expected sign; where neither candidate makes progress
        the bracket is bisected.
        """

        for _ in range(self.newton_max_iter):

            active = np.logical_and(active, t_r - t_l > self.newton_eps * np.abs(t_r))
            if not np.any(active):
                break

            cand_l, cand_r = quadratic_newton_step(t_l, t_r, psi_l, psi_r,
                                                   dpsi(t_l), dpsi(t_r), sign=-1.0)

            psi_cand_l = psi(cand_l)
            psi_cand_r = psi(cand_r)

            take_l = active & (psi_cand_l >= 0.0) & (cand_l > t_l)
            take_r = active & (psi_cand_r < 0.0) & (cand_r < t_r)

            new_l = np.where(take_l, cand_l, t_l)
            new_psi_l = np.where(take_l, psi_cand_l, psi_l)
            new_r = np.where(take_r, cand_r, t_r)
            new_psi_r = np.where(take_r, psi_cand_r, psi_r)

            # fall back to bisection where the quadratic step made no progress
            stalled = active & ~take_l & ~take_r
            t_m = 0.5 * (t_l + t_r)
            psi_m = psi(t_m)
            left = stalled & (psi_m >= 0.0)
            right = stalled & (psi_m < 0.0)

            t_l = np.where(left, t_m, new_l)
            psi_l = np.where(left, psi_m, new_psi_l)
            t_r = np.where(right, t_m, new_r)
            psi_r = np.where(right, psi_m, new_psi_r)

        return t_l


def _first_descending_root(A, B, C):
    """return the smallest r >= 0 at which the quadratic A r^2 + B r + C,
    with C >= 0, crosses from non-negative to negative values (inf if it
    never does)"""

    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        discriminant = B * B - 4.0 * A * C
        sqrt_discriminant = np.sqrt(np.maximum(discriminant, 0.0))

        # numerically stable pair of roots
        q = -0.5 * (B + np.where(B >= 0.0, 1.0, -1.0) * sqrt_discriminant)
        r_1 = q / A
        r_2 = C / q

        root = np.full(np.shape(C), np.inf)
        for r in (r_1, r_2):
            slope = 2.0 * A * r + B
            descending = np.logical_or(slope < 0.0,
                                       np.logical_and(slope == 0.0, A < 0.0))
            valid = np.isfinite(r) & (r >= 0.0) & descending & (discriminant >= 0.0)
            root = np.where(valid, np.minimum(root, r), root)

    return root
