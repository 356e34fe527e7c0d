"""An approximate Riemann solver that returns a guaranteed upper bound on
the maximal wave speed of the 1D Riemann problem between two states,
following Guermond & Popov, J. Comput. Phys. 321 (2016).

The two states are projected onto the direction n_ij and stored as
RiemannData objects.  We then ask a RiemannSolver for the bound:

`rs = RiemannSolver(problem)`

`lambda_max, p_star, n_iter = rs.compute(riemann_data_i, riemann_data_j)`

Everything is vectorized: each attribute of RiemannData can be an array
holding one lane per edge, and all case distinctions (shock vs.
rarefaction, bracket selection) are done with np.where.
"""

import numpy as np
import matplotlib.pyplot as plt

from idpeuler.limiter import Bounds, Limiter
from idpeuler.newton import EPS, quadratic_newton_step
from idpeuler.problem_description import AdmissibilityError, ProblemDescription

TINY = np.finfo(np.float64).tiny


class RiemannData:
    """ the primitive state projected onto a 1D Riemann problem

    Parameters
    ----------
    rho : ndarray
        density
    u : ndarray
        velocity in the direction of the Riemann problem
    p : ndarray
        pressure
    a : ndarray
        speed of sound
    """

    def __init__(self, *, rho, u, p, a):
        self.rho = np.asarray(rho, dtype=np.float64)
        self.u = np.asarray(u, dtype=np.float64)
        self.p = np.asarray(p, dtype=np.float64)
        self.a = np.asarray(a, dtype=np.float64)

    def __str__(self):
        return f"rho: {self.rho}; u: {self.u}; p: {self.p}; a: {self.a}"

    def __getitem__(self, idx):
        return RiemannData(rho=self.rho[idx], u=self.u[idx],
                           p=self.p[idx], a=self.a[idx])

    @classmethod
    def from_primitive(cls, *, rho, u, p, gamma=1.4):
        """create the Riemann data from density, normal velocity and
        pressure of an ideal gas"""
        rho = np.asarray(rho, dtype=np.float64)
        p = np.asarray(p, dtype=np.float64)
        return cls(rho=rho, u=u, p=p, a=np.sqrt(gamma * p / rho))

    @classmethod
    def from_state(cls, problem, U, n):
        """project conserved states onto the direction n

        The momentum perpendicular to n only carries kinetic energy, so
        the pressure of the projected 1D state is the pressure of U.

        Parameters
        ----------
        problem : ProblemDescription
            the equation of state.
        U : ndarray
            conserved states, shape (..., nvar).
        n : ndarray
            unit directions, shape (..., dim).

        Returns
        -------
        RiemannData
        """

        rho = problem.density(U)
        u = np.sum(problem.momentum(U) * n, axis=-1) / rho
        # p = 0 is admissible; clip what roundoff pushes below it
        p = np.maximum(problem.pressure(U), 0.0)
        return cls(rho=rho, u=u, p=p, a=np.sqrt(problem.gamma * p / rho))


def positive_part(x):
    return np.maximum(x, 0.0)


def negative_part(x):
    return np.maximum(-x, 0.0)


def f(rd, p_star, gamma):
    """the single wave function f_Z(p) of the state rd, using the shock
    curve for p >= p_Z and the rarefaction curve otherwise"""

    radicand_inverse = 0.5 * rd.rho * ((gamma + 1.0) * p_star + (gamma - 1.0) * rd.p)
    shock = (p_star - rd.p) / np.sqrt(np.maximum(radicand_inverse, TINY))

    # the rarefaction branch needs p_star < p_Z, so it is never taken
    # for p_Z = 0
    p_z = np.where(rd.p > 0.0, rd.p, 1.0)

    exponent = 0.5 * (gamma - 1.0) / gamma
    rarefaction = ((p_star / p_z)**exponent - 1.0) * 2.0 * rd.a / (gamma - 1.0)

    return np.where(p_star >= rd.p, shock, rarefaction)


def df(rd, p_star, gamma):
    """the derivative of f with respect to p"""

    radicand_inverse = 0.5 * rd.rho * ((gamma + 1.0) * p_star + (gamma - 1.0) * rd.p)
    denominator = p_star + (gamma - 1.0) / (gamma + 1.0) * rd.p
    p_z = np.where(rd.p > 0.0, rd.p, 1.0)

    # f' is unbounded at p_star = p_Z = 0 and at p_star = 0
    with np.errstate(divide="ignore", invalid="ignore"):
        shock = (denominator - 0.5 * (p_star - rd.p)) / \
            (denominator * np.sqrt(radicand_inverse))

        exponent = -0.5 * (gamma + 1.0) / gamma
        rarefaction = 0.5 * (gamma - 1.0) / gamma * (p_star / p_z)**exponent / p_z * \
            2.0 * rd.a / (gamma - 1.0)

    return np.where(p_star >= rd.p, shock, rarefaction)


def phi(rd_i, rd_j, p, gamma):
    """phi(p) = f_i(p) + f_j(p) + u_j - u_i, which is increasing and
    concave; its root is the pressure p* of the star region"""
    # the parentheses keep phi bitwise invariant under (i, j, n) -> (j, i, -n)
    return f(rd_i, p, gamma) + f(rd_j, p, gamma) + (rd_j.u - rd_i.u)


def phi_of_p_max(rd_i, rd_j, gamma):
    """phi evaluated at p_max = max(p_i, p_j).  Both waves are on their
    shock curve there, so the rarefaction branch is never needed."""

    p_max = np.maximum(rd_i.p, rd_j.p)

    radicand_inverse_i = 0.5 * rd_i.rho * ((gamma + 1.0) * p_max + (gamma - 1.0) * rd_i.p)
    radicand_inverse_j = 0.5 * rd_j.rho * ((gamma + 1.0) * p_max + (gamma - 1.0) * rd_j.p)

    return (p_max - rd_i.p) / np.sqrt(np.maximum(radicand_inverse_i, TINY)) + \
        (p_max - rd_j.p) / np.sqrt(np.maximum(radicand_inverse_j, TINY)) + (rd_j.u - rd_i.u)


def dphi(rd_i, rd_j, p, gamma):
    return df(rd_i, p, gamma) + df(rd_j, p, gamma)


def lambda1_minus(rd, p_star, gamma):
    """estimate of the speed of the left-moving wave for a given p_star"""
    factor = 0.5 * (gamma + 1.0) / gamma
    # a sqrt(1 + factor (p_star - p)_+ / p), written without dividing by p
    return rd.u - np.sqrt(gamma / rd.rho * (rd.p + factor * positive_part(p_star - rd.p)))


def lambda3_plus(rd, p_star, gamma):
    """estimate of the speed of the right-moving wave for a given p_star"""
    factor = 0.5 * (gamma + 1.0) / gamma
    return rd.u + np.sqrt(gamma / rd.rho * (rd.p + factor * positive_part(p_star - rd.p)))


def compute_gap(rd_i, rd_j, p_1, p_2, gamma):
    """for a bracket p_1 <= p* <= p_2 return the gap between the wave
    speed estimates of both ends, and the upper bound lambda_max taken
    at p_2

    Returns
    -------
    gap : ndarray
    lambda_max : ndarray
    """

    # lambda1_minus decreases with p_star, so p_2 gives the outer estimate
    nu_11 = lambda1_minus(rd_i, p_2, gamma)
    nu_12 = lambda1_minus(rd_i, p_1, gamma)

    nu_31 = lambda3_plus(rd_j, p_1, gamma)
    nu_32 = lambda3_plus(rd_j, p_2, gamma)

    lambda_max = np.maximum(positive_part(nu_32), negative_part(nu_11))
    gap = np.maximum(np.abs(nu_32 - nu_31), np.abs(nu_12 - nu_11))

    return gap, lambda_max


def compute_lambda(rd_i, rd_j, p_star, gamma):
    """the upper bound on the maximal wave speed for an upper bound
    p_star of the star pressure"""

    nu_11 = lambda1_minus(rd_i, p_star, gamma)
    nu_32 = lambda3_plus(rd_j, p_star, gamma)

    return np.maximum(positive_part(nu_32), negative_part(nu_11))


def p_star_two_rarefaction(rd_i, rd_j, gamma):
    """the star pressure under the assumption that both waves are
    rarefactions.  This is an upper bound, phi(p_star_tilde) >= 0."""

    factor = 0.5 * (gamma - 1.0)

    # a negative numerator is the vacuum case, p* = 0
    numerator = positive_part(rd_i.a + rd_j.a - factor * (rd_j.u - rd_i.u))

    # a_Z p_Z^(-(gamma - 1) / (2 gamma)) = sqrt(gamma / rho_Z) p_Z^(1 / (2 gamma)),
    # which stays finite for p_Z = 0 and is symmetric in i and j
    denominator = np.sqrt(gamma / rd_i.rho) * rd_i.p**(0.5 / gamma) + \
        np.sqrt(gamma / rd_j.rho) * rd_j.p**(0.5 / gamma)

    exponent = 2.0 * gamma / (gamma - 1.0)

    # both pressures zero and colliding: no finite bound
    with np.errstate(divide="ignore", invalid="ignore"):
        ratio = np.where(numerator > 0.0, numerator / denominator, 0.0)

    return ratio**exponent


def shock_and_expansion_density(p_z, rho_z, p_star, gamma):
    """the density behind a shock and behind an expansion wave that
    connect the state (rho_z, p_z) to the pressure p_star

    Returns
    -------
    rho_shock : ndarray
        the Rankine-Hugoniot density.
    rho_expansion : ndarray
        the isentropic density.
    """

    mu = (gamma - 1.0) / (gamma + 1.0)

    rho_shock = rho_z * (mu * p_z + p_star) / np.maximum(mu * p_star + p_z, TINY)

    # there is no expansion out of p_Z = 0
    ratio = np.where(p_z > 0.0, p_star / np.where(p_z > 0.0, p_z, 1.0), 1.0)
    rho_expansion = rho_z * ratio**(1.0 / gamma)

    return rho_shock, rho_expansion


def greedy_bounds(rd_i, rd_j, p_1, p_2, gamma):
    """bounds on the density, the specific entropy and the entropy
    inequality of the Riemann fan, given a bracket p_1 <= p* <= p_2

    Both star densities grow with p*, so the shock densities at p_2 bound
    them from above and the expansion densities at p_1 from below.  The
    specific entropy only increases across a shock.

    Returns
    -------
    Bounds
    """

    shk_i, _ = shock_and_expansion_density(rd_i.p, rd_i.rho, p_2, gamma)
    shk_j, _ = shock_and_expansion_density(rd_j.p, rd_j.rho, p_2, gamma)
    _, exp_i = shock_and_expansion_density(rd_i.p, rd_i.rho, p_1, gamma)
    _, exp_j = shock_and_expansion_density(rd_j.p, rd_j.rho, p_1, gamma)

    rho_min = np.minimum(np.minimum(rd_i.rho, rd_j.rho), np.minimum(exp_i, exp_j))
    rho_max = np.maximum(np.maximum(rd_i.rho, rd_j.rho), np.maximum(shk_i, shk_j))

    # in primitive variables: s = p / (gamma - 1) rho^-gamma and
    # salpha = (p / (gamma - 1) rho)^(1 / (gamma + 1))
    rho_e_i = rd_i.p / (gamma - 1.0)
    rho_e_j = rd_j.p / (gamma - 1.0)

    s_i = rho_e_i * rd_i.rho**(-gamma)
    s_j = rho_e_j * rd_j.rho**(-gamma)

    salpha_i = (rho_e_i * rd_i.rho)**(1.0 / (gamma + 1.0))
    salpha_j = (rho_e_j * rd_j.rho)**(1.0 / (gamma + 1.0))

    return Bounds(rho_min=rho_min, rho_max=rho_max,
                  s_min=np.minimum(s_i, s_j),
                  salpha_avg=0.5 * (salpha_i + salpha_j),
                  salpha_flux=0.5 * (rd_i.u * salpha_i - rd_j.u * salpha_j))


class RiemannSolver:
    """ compute an upper bound on the maximal wave speed of the Riemann
    problem between two states

    Parameters
    ----------
    problem : ProblemDescription, optional
        the equation of state.
    newton_max_iter : int, optional
        the maximal number of quadratic Newton steps.  With 0 the two
        rarefaction estimate (or p_max) is used directly as the upper
        bracket, which is cheap but less sharp.
    newton_eps : float, optional
        tolerance on the gap between the wave speed estimates.
    check_bounds : bool, optional
        verify that the returned pressure is an upper bound of p*.
    """

    def __init__(self, problem=None, *, newton_max_iter=2, newton_eps=1.e-10,
                 check_bounds=False):

        if problem is None:
            problem = ProblemDescription()

        if newton_max_iter < 0:
            raise ValueError("newton_max_iter has to be non-negative")

        if newton_eps <= 0.0:
            raise ValueError("newton_eps has to be positive")

        self.problem = problem
        self.gamma = problem.gamma
        self.newton_max_iter = newton_max_iter
        self.newton_eps = newton_eps
        self.check_bounds = check_bounds

    def compute_brackets(self, rd_i, rd_j):
        """find p_1 <= p* <= p_2 and shrink the bracket with at most
        newton_max_iter quadratic Newton steps

        Returns
        -------
        p_1, p_2 : ndarray
            the bracket.
        n_iter : ndarray
            the number of Newton steps taken in every lane.
        """

        gamma = self.gamma

        p_min = np.minimum(rd_i.p, rd_j.p)
        p_max = np.maximum(rd_i.p, rd_j.p)

        p_star_tilde = p_star_two_rarefaction(rd_i, rd_j, gamma)
        phi_p_max = phi_of_p_max(rd_i, rd_j, gamma)

        # phi(p_max) < 0: p* lies above p_max (two shocks)
        p_2 = np.where(phi_p_max < 0.0, p_star_tilde, np.minimum(p_max, p_star_tilde))

        n_iter = np.zeros(np.shape(p_2), dtype=int)

        p_1 = np.where(phi_p_max < 0.0, p_max, p_min)

        # two expansions: here p_star_tilde <= p_min already, and we
        # collapse the bracket onto it
        p_1 = np.where(p_1 <= p_2, p_1, p_2)

        if self.newton_max_iter == 0:
            return p_1, p_2, n_iter

        gap, _ = compute_gap(rd_i, rd_j, p_1, p_2, gamma)

        for _ in range(self.newton_max_iter):

            active = gap > self.newton_eps
            if not np.any(active):
                break

            phi_1 = phi(rd_i, rd_j, p_1, gamma)
            phi_2 = phi(rd_i, rd_j, p_2, gamma)
            dphi_1 = dphi(rd_i, rd_j, p_1, gamma)
            dphi_2 = dphi(rd_i, rd_j, p_2, gamma)

            p_1_new, p_2_new = quadratic_newton_step(p_1, p_2, phi_1, phi_2, dphi_1, dphi_2)

            p_1 = np.where(active, p_1_new, p_1)
            p_2 = np.where(active, p_2_new, p_2)
            n_iter = n_iter + active

            gap, _ = compute_gap(rd_i, rd_j, p_1, p_2, gamma)

        return p_1, p_2, n_iter

    def compute(self, rd_i, rd_j):
        """ compute the wave speed bound for two projected states

        Parameters
        ----------
        rd_i : RiemannData
            the state on the left of the interface.
        rd_j : RiemannData
            the state on the right of the interface.

        Returns
        -------
        lambda_max : ndarray
            upper bound on the maximal wave speed.
        p_star : ndarray
            upper bound on the star pressure.
        n_iter : ndarray
            the number of Newton steps taken.
        """

        _, p_2, n_iter = self.compute_brackets(rd_i, rd_j)

        if self.check_bounds:
            self.check_pressure(rd_i, rd_j, p_2)

        return compute_lambda(rd_i, rd_j, p_2, self.gamma), p_2, n_iter

    def compute_states(self, U_i, U_j, n_ij):
        """ compute the wave speed bound for two conserved states and the
        unit direction n_ij pointing from i to j

        Returns
        -------
        lambda_max, p_star, n_iter : ndarray
        """

        rd_i = RiemannData.from_state(self.problem, U_i, n_ij)
        rd_j = RiemannData.from_state(self.problem, U_j, n_ij)
        return self.compute(rd_i, rd_j)

    def check_pressure(self, rd_i, rd_j, p_star):
        """raise an AdmissibilityError if p_star is not an upper bound of
        the star pressure"""

        phi_p_star = phi(rd_i, rd_j, p_star, self.gamma)
        bad = phi_p_star < -self.newton_eps
        if np.any(bad):
            print("invalid state in Riemann problem")
            print(f"left state = {rd_i[bad] if np.ndim(bad) else rd_i}")
            print(f"right state = {rd_j[bad] if np.ndim(bad) else rd_j}")
            raise AdmissibilityError("phi(p_star) < 0: p_star is not an upper bound")


class GreedyRiemannSolver(RiemannSolver):
    """ a Riemann solver that tries to lower the wave speed bound further
    by limiting an (almost) inviscid bar state update against the bounds
    of the Riemann fan

    Swapping the states and flipping the direction, (U_j, U_i, -n_ij),
    gives the same bracket, bar state, correction and bounds, so the
    result is symmetric to the last bit like the one of RiemannSolver.

    Parameters
    ----------
    problem : ProblemDescription, optional
        the equation of state.
    greedy_threshold : float, optional
        only lanes with a density contrast rho_min < greedy_threshold rho_max
        are tightened; all other lanes accept the regular bound.
    limiter_newton_max_iter : int, optional
        Newton steps of the entropy inequality limiter.
    **kwargs
        passed on to RiemannSolver.
    """

    def __init__(self, problem=None, *, greedy_threshold=0.9,
                 limiter_newton_max_iter=4, **kwargs):

        super().__init__(problem, **kwargs)

        if not 0.0 <= greedy_threshold <= 1.0:
            raise ValueError("greedy_threshold has to be in [0, 1]")

        self.greedy_threshold = greedy_threshold

        self.limiter = Limiter(self.problem,
                               families=("rho", "specific_entropy", "entropy_inequality"),
                               newton_max_iter=limiter_newton_max_iter,
                               newton_eps=self.newton_eps)

    def compute_states(self, U_i, U_j, n_ij):

        v = self.problem

        U_i = np.asarray(U_i, dtype=np.float64)
        U_j = np.asarray(U_j, dtype=np.float64)
        n_ij = np.asarray(n_ij, dtype=np.float64)

        rd_i = RiemannData.from_state(v, U_i, n_ij)
        rd_j = RiemannData.from_state(v, U_j, n_ij)

        p_1, p_2, n_iter = self.compute_brackets(rd_i, rd_j)
        lambda_max = compute_lambda(rd_i, rd_j, p_2, self.gamma)

        rho_min = np.minimum(rd_i.rho, rd_j.rho)
        rho_max = np.maximum(rd_i.rho, rd_j.rho)

        greedy = np.logical_and(rho_min < self.greedy_threshold * rho_max + EPS,
                                lambda_max > 0.0)
        if not np.any(greedy):
            return lambda_max, p_2, n_iter

        # bar state U = (U_i + U_j) / 2 and P = (f_i - f_j) n_ij / 2
        U = 0.5 * (U_i + U_j)
        P = 0.5 * np.einsum("...kd,...d->...k", v.f(U_i) - v.f(U_j), n_ij)

        bounds = greedy_bounds(rd_i, rd_j, p_1, p_2, self.gamma)

        with np.errstate(divide="ignore"):
            lambda_inverse = np.where(greedy, 1.0 / lambda_max, 1.0)

        t = self.limiter.limit(bounds, U, P, lambda_inverse, 1000.0 * lambda_inverse)
        lambda_greedy = 1.0 / t

        if self.check_bounds:
            bad = np.logical_and(greedy, lambda_max - lambda_greedy <= -100.0 * self.newton_eps)
            if np.any(bad):
                print("garbled up lambda_greedy")
                print(f"lambda_max = {lambda_max[bad] if np.ndim(bad) else lambda_max}")
                print(f"lambda_greedy = {lambda_greedy[bad] if np.ndim(bad) else lambda_greedy}")
                raise AdmissibilityError("the greedy wave speed exceeds lambda_max")

        lambda_max = np.where(greedy, np.minimum(lambda_greedy, lambda_max), lambda_max)

        return lambda_max, p_2, n_iter


def plot_phi(riemann_solver, rd_i, rd_j, p_min=0.0, p_max=None, N=500):
    """ plot phi(p) together with the bracket found by the solver.

    Parameters
    ----------
    riemann_solver : RiemannSolver
        the solver used for the bracket.
    rd_i, rd_j : RiemannData
        a single pair of states.
    p_min : float
        the minimum pressure to plot.
    p_max : float
        the maximum pressure to plot (defaults to twice the upper bracket).
    N : int
        number of points to use in the plot.

    Returns
    -------
    matplotlib.pyplot.Figure
    """

    gamma = riemann_solver.gamma
    p_1, p_2, _ = riemann_solver.compute_brackets(rd_i, rd_j)

    if p_max is None:
        p_max = 2.0 * max(float(p_2), float(rd_i.p), float(rd_j.p))

    fig = plt.figure()
    ax = fig.add_subplot(111)

    p = np.linspace(p_min, p_max, num=N)[1:]
    ax.plot(p, phi(rd_i, rd_j, p, gamma), c="C0", lw=2)
    ax.axhline(0.0, c="0.5", ls=":")

    for pz, label, color in [(rd_i.p, "left", "C1"), (rd_j.p, "right", "C2")]:
        ax.axvline(float(pz), c=color, ls=":")
        ax.text(float(pz), 0.0, label, color=color, horizontalalignment="center")

    ax.axvspan(float(p_1), float(p_2), color="C3", alpha=0.25)

    ax.set_xlim(p_min, p_max)

    ax.set_xlabel(r"$p$", fontsize="large")
    ax.set_ylabel(r"$\phi(p)$", fontsize="large")

    return fig


if __name__ == "__main__":

    q_l = RiemannData.from_primitive(rho=1.0, u=0.0, p=1.0)
    q_r = RiemannData.from_primitive(rho=0.125, u=0.0, p=0.1)

    rs = RiemannSolver()
    print(rs.compute(q_l, q_r))
