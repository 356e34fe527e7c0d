"""Some standard initial (and exact) states for testing the Euler solver"""


import numpy as np


CONFIGURATIONS = ("uniform", "shock front", "contrast", "sod contrast", "isentropic vortex")


class InitialValues:
    """A family of analytic states that can be sampled at arbitrary points

    Parameters
    ----------
    problem : ProblemDescription
        the equation of state and state layout.
    configuration : str
        one of "uniform", "shock front", "contrast", "sod contrast",
        "isentropic vortex".
    direction : ndarray, optional
        the direction of the flow, shock front, or vortex motion.  It is
        normalized here.
    position : ndarray, optional
        a reference point of the shock front, contrast, or vortex.
    state_1d : tuple, optional
        (rho, u, p) of the uniform state, of the state ahead of the shock
        front, and of the upper half of the contrast.  u is the velocity
        along `direction`.  Defaults to (gamma, 3, 1), or to the gas at
        rest (gamma, 0, 1) ahead of a shock front.
    state_1d_contrast : tuple, optional
        (rho, u, p) of the lower half of the contrast.
    mach_number : float, optional
        the Mach number of the shock front relative to the state ahead of
        it, or the advection speed of the vortex.
    vortex_beta : float, optional
        the strength of the isentropic vortex.
    perturbation : float, optional
        magnitude of a multiplicative random perturbation of every
        conserved component.
    seed : int, optional
        seed of the random perturbation.
    """

    def __init__(self, problem, configuration="uniform", *,
                 direction=None, position=None,
                 state_1d=None, state_1d_contrast=None,
                 mach_number=2.0, vortex_beta=5.0,
                 perturbation=0.0, seed=None):

        if configuration not in CONFIGURATIONS:
            raise ValueError(f"unknown initial state {configuration}")

        if configuration == "isentropic vortex" and problem.dim != 2:
            raise ValueError("the isentropic vortex is only implemented in 2D")

        self.problem = problem
        self.configuration = configuration

        dim = problem.dim
        gamma = problem.gamma

        if direction is None:
            direction = np.eye(dim)[0]
        direction = np.asarray(direction, dtype=np.float64).reshape(dim)
        norm = np.sqrt(np.sum(direction**2))
        if norm == 0.0:
            raise ValueError("the initial direction is set to the zero vector")
        self.direction = direction / norm

        if position is None:
            position = np.eye(dim)[0]
        self.position = np.asarray(position, dtype=np.float64).reshape(dim)

        if state_1d is None:
            if configuration == "shock front":
                state_1d = (gamma, 0.0, 1.0)
            else:
                state_1d = (gamma, 3.0, 1.0)
        if state_1d_contrast is None:
            state_1d_contrast = (gamma, 3.0, 1.0)

        self.state_1d = tuple(state_1d)
        self.state_1d_contrast = tuple(state_1d_contrast)

        self.mach_number = mach_number
        self.vortex_beta = vortex_beta

        self.perturbation = perturbation
        self.rng = np.random.default_rng(seed)

        if configuration == "shock front":
            self.shock_speed, self.state_1d_left = self._shock_front_state()

    def __str__(self):
        return f"initial values: {self.configuration}"

    def _shock_front_state(self):
        """the state behind a shock of speed S3 = mach a_R moving into
        state_1d, from the Rankine-Hugoniot conditions"""

        gamma = self.problem.gamma
        rho_r, u_r, p_r = self.state_1d

        a_r = np.sqrt(gamma * p_r / rho_r)
        mach_r = u_r / a_r

        S3 = self.mach_number * a_r
        delta_mach = mach_r - self.mach_number

        rho_l = rho_r * (gamma + 1.0) * delta_mach**2 / ((gamma - 1.0) * delta_mach**2 + 2.0)
        u_l = (1.0 - rho_r / rho_l) * S3 + rho_r / rho_l * u_r
        p_l = p_r * (2.0 * gamma * delta_mach**2 - (gamma - 1.0)) / (gamma + 1.0)

        return S3, (rho_l, u_l, p_l)

    def from_1d_state(self, state, n=1):
        """ convert a 1d (rho, u, p) state, with u along `direction`, into
        n copies of the conserved state"""

        rho, u, p = state
        return self.problem.from_primitive(np.full(n, rho),
                                           np.full((n, self.problem.dim), u) * self.direction,
                                           np.full(n, p))

    def interpolate(self, points, t=0.0):
        """ evaluate the state at the given points and time

        Parameters
        ----------
        points : ndarray
            coordinates of shape (n, dim).
        t : float, optional
            time.

        Returns
        -------
        ndarray
            the conserved state of shape (n, nvar).
        """

        points = np.asarray(points, dtype=np.float64).reshape(-1, self.problem.dim)
        n = len(points)

        if self.configuration == "uniform":
            U = self.from_1d_state(self.state_1d, n)

        elif self.configuration == "shock front":
            x = (points - self.position) @ self.direction - self.shock_speed * t
            U = np.where((x > 0.0)[:, np.newaxis],
                         self.from_1d_state(self.state_1d, n),
                         self.from_1d_state(self.state_1d_left, n))

        elif self.configuration == "contrast":
            # the contrast is across the second coordinate (the first in 1D)
            k = min(1, self.problem.dim - 1)
            x = points[:, k] - self.position[k]
            U = np.where((x > 0.0)[:, np.newaxis],
                         self.from_1d_state(self.state_1d, n),
                         self.from_1d_state(self.state_1d_contrast, n))

        elif self.configuration == "sod contrast":
            x = (points - self.position) @ self.direction
            U = np.where((x > 0.0)[:, np.newaxis],
                         self.from_1d_state((0.125, 0.0, 0.1), n),
                         self.from_1d_state((1.0, 0.0, 1.0), n))

        else:
            U = self._isentropic_vortex(points, t)

        if self.perturbation != 0.0:
            U = U * (1.0 + self.perturbation * self.rng.uniform(-1.0, 1.0, size=U.shape))

        return U

    def _isentropic_vortex(self, points, t):
        """the 2D isentropic vortex of Guermond et al., advected with speed
        mach_number along direction"""

        gamma = self.problem.gamma

        xbar = points - self.position - self.direction * self.mach_number * t
        r2 = np.sum(xbar**2, axis=-1)

        factor = self.vortex_beta / (2.0 * np.pi) * np.exp(0.5 - 0.5 * r2)
        T = 1.0 - (gamma - 1.0) / (2.0 * gamma) * factor**2

        u = np.empty_like(points)
        u[:, 0] = self.direction[0] * self.mach_number - factor * xbar[:, 1]
        u[:, 1] = self.direction[1] * self.mach_number + factor * xbar[:, 0]

        rho = T**(1.0 / (gamma - 1.0))
        p = rho**gamma

        return self.problem.from_primitive(rho, u, p)
