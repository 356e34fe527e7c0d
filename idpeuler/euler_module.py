"""
The explicit invariant domain preserving Euler step on a graph.
"""


import matplotlib.pyplot as plt
import numpy as np

from idpeuler.boundary import apply_boundary_conditions
from idpeuler.limiter import LIMITER_FAMILIES, Limiter, local_bounds
from idpeuler.parallel import for_each_range
from idpeuler.problem_description import AdmissibilityError, ProblemDescription
from idpeuler.riemann_solver import GreedyRiemannSolver, RiemannSolver


class EulerModule:
    """Advance the compressible Euler equations on a graph with a
    low-order invariant domain preserving update plus a convex limited
    high-order correction, following Guermond, Nazarov, Popov & Tomas,
    SIAM J. Sci. Comput. 40 (2018)

    Parameters
    ----------
    graph : Graph
        the connectivity, c_ij and lumped masses.
    problem : ProblemDescription, optional
        the equation of state.  Defaults to an ideal gas with
        gamma = 1.4 in the dimension of the graph.
    cfl : float, optional
        the CFL number, in (0, 1].
    high_order : bool, optional
        add the limited antidiffusive correction to the low-order update.
    limiter_families : tuple of str, optional
        the bounds enforced by the limiter.  Allowed values are:
        "rho", "specific_entropy", "entropy_inequality"
    relaxation : float, optional
        relative widening of the local limiter bounds.
    smoothness_power : float, optional
        the exponent q of the smoothness indicator.
    greedy_dij : bool, optional
        tighten the graph viscosity with the greedy Riemann solver.
    greedy_threshold : float, optional
        the density contrast below which the greedy tightening is skipped.
    newton_max_iter : int, optional
        Newton steps of the Riemann solver.
    newton_eps : float, optional
        tolerance of the Newton searches.
    limiter_newton_max_iter : int, optional
        Newton steps of the entropy inequality limiter.
    n_workers : int, optional
        the number of threads used for the per-edge phases.
    boundary_map : BoundaryMap, optional
        the boundary nodes to post-process after every step.
    boundary_hook : function, optional
        the post-processing, with the signature
        `U = boundary_hook(U, boundary_map, t)`.  The default enforces
        the kinds in `boundary_map`.
    synchronize : function, optional
        called as `U = synchronize(U)` after the low-order update and
        after the final update, e.g. to exchange ghost values.
    check_bounds : bool, optional
        verify admissibility at every stage and raise an
        AdmissibilityError when it is violated.
    """

    def __init__(self, graph, *, problem=None, cfl=0.5,
                 high_order=True,
                 limiter_families=("rho", "specific_entropy"),
                 relaxation=0.0, smoothness_power=3,
                 greedy_dij=False, greedy_threshold=0.9,
                 newton_max_iter=2, newton_eps=1.e-10,
                 limiter_newton_max_iter=4,
                 n_workers=1,
                 boundary_map=None, boundary_hook=None, synchronize=None,
                 check_bounds=False):

        self.graph = graph

        if problem is None:
            problem = ProblemDescription(graph.dim)
        self.problem = problem

        if problem.dim != graph.dim:
            raise ValueError("the dimension of the problem and the graph differ")

        if not 0.0 < cfl <= 1.0:
            raise ValueError("the CFL number has to be in (0, 1]")

        for family in limiter_families:
            if family not in LIMITER_FAMILIES:
                raise ValueError(f"invalid limiter family {family}")

        if relaxation < 0.0:
            raise ValueError("relaxation has to be non-negative")

        if smoothness_power <= 0:
            raise ValueError("smoothness_power has to be positive")

        if n_workers < 1:
            raise ValueError("need at least one worker")

        self.cfl = cfl
        self.high_order = high_order
        self.relaxation = relaxation
        self.smoothness_power = smoothness_power
        self.n_workers = n_workers
        self.check_bounds = check_bounds

        # the greedy viscosity is a separate solver, so the default path
        # carries no greedy branches
        if greedy_dij:
            self.riemann_solver = GreedyRiemannSolver(problem,
                                                      greedy_threshold=greedy_threshold,
                                                      limiter_newton_max_iter=limiter_newton_max_iter,
                                                      newton_max_iter=newton_max_iter,
                                                      newton_eps=newton_eps,
                                                      check_bounds=check_bounds)
        else:
            self.riemann_solver = RiemannSolver(problem,
                                                newton_max_iter=newton_max_iter,
                                                newton_eps=newton_eps,
                                                check_bounds=check_bounds)

        self.limiter = Limiter(problem, families=limiter_families,
                               newton_max_iter=limiter_newton_max_iter,
                               newton_eps=newton_eps,
                               check_bounds=check_bounds)

        self.boundary_map = boundary_map
        self.boundary_hook = boundary_hook
        self.synchronize = synchronize

        self.t = 0.0
        self.dt = np.nan
        self.nstep = 0

    def __str__(self):
        return f"Euler module on {self.graph}, cfl = {self.cfl}"

    def compute_viscosity(self, U):
        """ compute the graph viscosity d_ij = lambda_max ||c_ij|| of every
        stored edge

        Parameters
        ----------
        U : ndarray
            the state of all nodes.

        Returns
        -------
        ndarray
            one d_ij per edge.
        """

        g = self.graph
        d = np.empty(g.n_edges, dtype=np.float64)

        def work(start, stop):
            s = slice(start, stop)
            lambda_max, _, _ = self.riemann_solver.compute_states(U[g.ei[s]], U[g.ej[s]], g.nij[s])
            d[s] = lambda_max * g.cij_norm[s]

        for_each_range(g.n_edges, work, n_workers=self.n_workers)

        return d

    def compute_tau(self, d, tau_max=np.inf):
        """ the largest stable step size, tau = cfl min_i m_i / (2 sum_j d_ij),
        but no larger than tau_max"""

        g = self.graph

        finite = np.isfinite(d)
        if not np.all(finite):
            print(f"non-finite graph viscosity on edges {np.flatnonzero(~finite)}")
            raise AdmissibilityError("the wave speed bound is not finite")

        d_sum = g.scatter_add(d, d)

        with np.errstate(divide="ignore"):
            tau = self.cfl * np.min(g.mass / (2.0 * d_sum))

        tau = min(tau, tau_max)

        if not np.isfinite(tau):
            raise ValueError("unable to bound the step size, no wave speed and no tau_max")

        return tau

    def low_order_update(self, U, d, tau):
        """ the invariant domain preserving update

        U^L_i = U_i - tau / m_i sum_j [(f_j - f_i) c_ij - d_ij (U_j - U_i)]

        Returns
        -------
        ndarray
        """

        g = self.graph
        F = self.problem.f(U)

        # node i reads c_ij, node j reads the mirror c_ji = -c_ij
        dF = F[g.ej] - F[g.ei]
        fc_i = np.einsum("ekd,ed->ek", dF, g.directed_cij(1.0))
        fc_j = np.einsum("ekd,ed->ek", -dF, g.directed_cij(-1.0))

        dU = U[g.ej] - U[g.ei]
        ddU = d[:, np.newaxis] * dU

        rhs = g.scatter_add(-fc_i + ddU, -fc_j - ddU)

        return U + tau * rhs / g.mass[:, np.newaxis]

    def smoothness_indicator(self, U):
        """ alpha_i = (|sum_j (s_j - s_i)| / sum_j |s_j - s_i|)^q of the
        specific entropy s; 0 where the state is locally constant"""

        g = self.graph
        s = self.problem.specific_entropy(U)

        ds = s[g.ej] - s[g.ei]
        numerator = np.abs(g.scatter_add(ds, -ds))
        denominator = g.scatter_add(np.abs(ds), np.abs(ds))

        with np.errstate(divide="ignore", invalid="ignore"):
            alpha = np.where(denominator > 0.0, numerator / denominator, 0.0)

        return np.minimum(alpha, 1.0)**self.smoothness_power

    def antidiffusive_flux(self, U, d):
        """ the raw correction A_ij = (d^H_ij - d_ij)(U_j - U_i) of every
        stored edge, with d^H_ij = max(alpha_i, alpha_j) d_ij.  The mirror
        is A_ji = -A_ij."""

        g = self.graph
        alpha = self.smoothness_indicator(U)
        beta = np.maximum(alpha[g.ei], alpha[g.ej])

        return ((beta - 1.0) * d)[:, np.newaxis] * (U[g.ej] - U[g.ei])

    def limit(self, U_low, A, tau):
        """ find the limiter value t_ij = t_ji of every edge

        The low-order state of node i is a convex combination of the
        states U^L_i + P_ij with P_ij = tau deg_i / m_i A_ij, so it is
        enough to limit every directed edge against the bounds of its
        first node.

        Returns
        -------
        ndarray
            one t_ij in [0, 1] per edge.
        """

        g = self.graph
        bounds = local_bounds(g, self.problem, U_low, relaxation=self.relaxation)

        scale = tau * g.degree / g.mass
        t = np.empty(g.n_edges, dtype=np.float64)

        def work(start, stop):
            s = slice(start, stop)
            i = g.ei[s]
            j = g.ej[s]

            P_i = scale[i][:, np.newaxis] * A[s]
            P_j = -scale[j][:, np.newaxis] * A[s]

            t_i = self.limiter.limit(bounds[i], U_low[i], P_i, 0.0, 1.0)
            t_j = self.limiter.limit(bounds[j], U_low[j], P_j, 0.0, 1.0)

            t[s] = np.minimum(t_i, t_j)

        for_each_range(g.n_edges, work, n_workers=self.n_workers)

        return t

    def check_admissible(self, U, stage):
        """raise an AdmissibilityError if any node has rho <= 0 or rho e < 0"""

        admissible = self.problem.is_admissible(U)
        if not np.all(admissible):
            nodes = np.nonzero(~admissible)[0]
            print(f"inadmissible state after the {stage}")
            print(f"nodes = {nodes}")
            print(f"states = {U[nodes]}")
            raise AdmissibilityError(f"inadmissible state after the {stage}")

    def step(self, U, tau_max=np.inf, t=0.0):
        """ advance the state by one explicit step

        Parameters
        ----------
        U : ndarray
            the state U^n of shape (n_nodes, nvar).
        tau_max : float, optional
            the largest step size the caller accepts.
        t : float, optional
            the time of U^n, passed to the boundary conditions.

        Returns
        -------
        U_new : ndarray
            the state U^{n+1}.
        tau : float
            the step size used.
        """

        U = np.asarray(U, dtype=np.float64)

        if U.shape != (self.graph.n_nodes, self.problem.nvar):
            raise ValueError(f"the state has shape {U.shape}, expected "
                             f"{(self.graph.n_nodes, self.problem.nvar)}")

        if not tau_max > 0.0:
            raise ValueError("tau_max has to be positive")

        d = self.compute_viscosity(U)
        tau = self.compute_tau(d, tau_max)

        U_new = self.low_order_update(U, d, tau)

        if self.synchronize is not None:
            U_new = self.synchronize(U_new)

        if self.check_bounds:
            self.check_admissible(U_new, "low-order update")

        if self.high_order:
            A = self.antidiffusive_flux(U, d)
            t_ij = self.limit(U_new, A, tau)

            tA = t_ij[:, np.newaxis] * A
            U_new = U_new + tau * self.graph.scatter_add(tA, -tA) / self.graph.mass[:, np.newaxis]

            if self.synchronize is not None:
                U_new = self.synchronize(U_new)

            if self.check_bounds:
                self.check_admissible(U_new, "limited update")

        if self.boundary_map is not None:
            if self.boundary_hook is None:
                U_new = apply_boundary_conditions(self.problem, self.boundary_map, U_new, t + tau)
            else:
                U_new = self.boundary_hook(U_new, self.boundary_map, t + tau)

        return U_new, tau

    def evolve(self, U, tmax, *, verbose=True):
        """The main evolution driver to advance the state to time tmax

        Parameters
        ----------
        U : ndarray
            the initial state.
        tmax : float
            maximum simulation time to evolve to
        verbose : bool, optional
            enable / disable verbosity

        Returns
        -------
        ndarray
            the state at tmax.
        """

        while self.t < tmax:

            U, self.dt = self.step(U, tau_max=tmax - self.t, t=self.t)

            # land exactly on tmax
            if self.dt >= tmax - self.t:
                self.t = tmax
            else:
                self.t += self.dt
            self.nstep += 1

            if verbose:
                print(f"step: {self.nstep:4d}, t = {self.t:#8.4g}, dt = {self.dt:#8.4g}")

        return U

    def plot_primitive(self, U, *, ivar=None):
        """Plot the primitive variable(s) of a 1D state.

        Parameters
        ----------
        U : ndarray
            the state to plot.
        ivar : int
            the index of the variable to plot (None plots rho, u, p)

        Returns
        -------
        matplotlib.pyplot.Figure
        """

        v = self.problem
        assert self.graph.dim == 1 and self.graph.points is not None
        assert ivar is None or (0 <= ivar < v.nvar)

        rho, u, p = v.to_primitive(U)
        q = np.column_stack([rho, u, p])
        x = self.graph.points[:, 0]

        if ivar is not None:
            fig = plt.figure()
            ax = fig.add_subplot()
            ax.plot(x, q[:, ivar], lw=2)
            ax.grid(color="0.5", linestyle=":")
            ax.set_xlabel("x")
            ax.set_ylabel(v.prim_names[ivar])

        else:
            fig, ax = plt.subplots(v.nvar, 1, sharex=True)
            for idx in range(v.nvar):
                ax[idx].plot(x, q[:, idx], lw=2)
                ax[idx].grid(color="0.5", linestyle=":")
                if idx == v.nvar-1:
                    ax[idx].set_xlabel("x")
                ax[idx].set_ylabel(v.prim_names[idx])

            size = fig.get_size_inches()
            fig.set_size_inches(size[0], size[0]*v.nvar/2.5)

        fig.tight_layout()
        return fig
