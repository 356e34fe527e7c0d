"""An exact Riemann solver for the Euler equations with a gamma-law
gas.  It is the reference the wave speed bounds of the approximate
solver are checked against.  The left and right states are given as
RiemannData objects:

`rp = ExactRiemannProblem(left_state, right_state)`

Next we solve for the star state:

`rp.find_star_state()`

Finally, we can sample the self-similar solution at any x/t, or ask for
the speeds of the two outermost waves:

`q = rp.sample_solution(xi=0.0)`

`lambda_1, lambda_3 = rp.wave_speeds()`
"""

import numpy as np
from scipy import optimize

from idpeuler.riemann_solver import RiemannData


class ExactRiemannProblem:
    """ the exact solution of a 1D Riemann problem

    Parameters
    ----------
    left_state : RiemannData
        primitive variable state to the left of the interface.
    right_state : RiemannData
        primitive variable state to the right of the interface.
    gamma : float
        ratio of specific heats.
    """

    def __init__(self, left_state, right_state, *, gamma=1.4):
        self.left = left_state
        self.right = right_state
        self.gamma = gamma

        self.ustar = None
        self.pstar = None

    def __str__(self):
        return f"pstar = {self.pstar}, ustar = {self.ustar}"

    def _side(self, side):
        if side == "left":
            return self.left, 1.0
        if side == "right":
            return self.right, -1.0
        raise ValueError("invalid side")

    def u_hugoniot(self, p, side):
        """the velocity of the states that can be connected to the left or
        right state by a single wave, as a function of the pressure

        Parameters
        ----------
        p : float
            pressure
        side : str
            "left" or "right" to indicate which state to use.

        Returns
        -------
        float
        """

        state, s = self._side(side)
        gamma = self.gamma
        c = float(state.a)
        p_z = float(state.p)

        if p < p_z:
            # rarefaction
            return float(state.u) + s * (2.0 * c / (gamma - 1.0)) * \
                (1.0 - (p / p_z)**((gamma - 1.0) / (2.0 * gamma)))

        # shock
        beta = (gamma + 1.0) / (gamma - 1.0)
        return float(state.u) + s * (2.0 * c / np.sqrt(2.0 * gamma * (gamma - 1.0))) * \
            (1.0 - p / p_z) / np.sqrt(1.0 + beta * p / p_z)

    def find_star_state(self, p_min=1.e-8, p_max=1.e4):
        """ root find the Hugoniot curves to find ustar, pstar.

        Parameters
        ----------
        p_min : float, optional
            minimum possible pressure.
        p_max : float, optional
            maximum possible pressure.
        """

        try:
            self.pstar = optimize.brentq(
                lambda p: self.u_hugoniot(p, "left") - self.u_hugoniot(p, "right"),
                p_min, p_max)
        except ValueError:
            print("unable to solve for the star region")
            print(f"left state = {self.left}")
            print(f"right state = {self.right}")
            raise

        self.ustar = self.u_hugoniot(self.pstar, "left")

    def wave_speeds(self):
        """ the speed of the fastest left-moving and right-moving signal

        Returns
        -------
        lambda_1 : float
            the 1-shock speed or the head of the 1-rarefaction.
        lambda_3 : float
            the 3-shock speed or the head of the 3-rarefaction.
        """

        if self.pstar is None:
            self.find_star_state()

        speeds = []
        for state, sgn in [(self.left, -1.0), (self.right, 1.0)]:
            c = float(state.a)
            if self.pstar > state.p:
                speeds.append(float(state.u) + sgn * c * np.sqrt(
                    0.5 * (self.gamma + 1.0) / self.gamma * self.pstar / state.p +
                    0.5 * (self.gamma - 1.0) / self.gamma))
            else:
                speeds.append(float(state.u) + sgn * c)

        return speeds[0], speeds[1]

    def shock_solution(self, sgn, state, xi):
        """return the solution at x/t = xi for a shock separating state
        from the star region"""

        gamma = self.gamma
        p_ratio = self.pstar / state.p
        c = float(state.a)

        # Toro, eq. 4.52 / 4.59
        S = float(state.u) + sgn * c * np.sqrt(0.5 * (gamma + 1.0) / gamma * p_ratio +
                                               0.5 * (gamma - 1.0) / gamma)

        if sgn * (S - xi) < 0:
            return state

        # star region, Toro eq. 4.50 / 4.57
        gam_fac = (gamma - 1.0) / (gamma + 1.0)
        rhostar = state.rho * (p_ratio + gam_fac) / (gam_fac * p_ratio + 1.0)
        return RiemannData.from_primitive(rho=rhostar, u=self.ustar, p=self.pstar, gamma=gamma)

    def rarefaction_solution(self, sgn, state, xi):
        """return the solution at x/t = xi for a rarefaction separating
        state from the star region"""

        gamma = self.gamma
        p_ratio = self.pstar / state.p
        c = float(state.a)
        cstar = c * p_ratio**((gamma - 1.0) / (2.0 * gamma))

        lambda_head = float(state.u) + sgn * c
        lambda_tail = self.ustar + sgn * cstar

        if sgn * (lambda_head - xi) < 0:
            return state

        if sgn * (lambda_tail - xi) > 0:
            # star region, isentropic (Toro 4.53 / 4.60)
            return RiemannData.from_primitive(rho=state.rho * p_ratio**(1.0 / gamma),
                                              u=self.ustar, p=self.pstar, gamma=gamma)

        # inside the fan, Toro 4.56 / 4.63
        gam_fac = (gamma - 1.0) / (gamma + 1.0)
        base = 2.0 / (gamma + 1.0) - sgn * gam_fac * (float(state.u) - xi) / c
        rho = state.rho * base**(2.0 / (gamma - 1.0))
        u = 2.0 / (gamma + 1.0) * (-sgn * c + 0.5 * (gamma - 1.0) * float(state.u) + xi)
        p = state.p * base**(2.0 * gamma / (gamma - 1.0))
        return RiemannData.from_primitive(rho=rho, u=u, p=p, gamma=gamma)

    def sample_solution(self, xi=0.0):
        """ the state of the self-similar solution at x/t = xi

        Returns
        -------
        RiemannData
        """

        if self.pstar is None:
            self.find_star_state()

        if self.ustar < xi:
            # we are in the R* or R region
            state = self.right
            sgn = 1.0
        else:
            state = self.left
            sgn = -1.0

        if self.pstar > state.p:
            return self.shock_solution(sgn, state, xi)

        return self.rarefaction_solution(sgn, state, xi)

    def sample(self, x, t, x0=0.0):
        """ sample the solution at the points x and time t > 0, with the
        initial discontinuity at x0

        Returns
        -------
        rho, u, p : ndarray
        """

        x = np.atleast_1d(np.asarray(x, dtype=np.float64))
        rho = np.empty_like(x)
        u = np.empty_like(x)
        p = np.empty_like(x)

        for n, xn in enumerate(x):
            q = self.sample_solution((xn - x0) / t)
            rho[n] = q.rho
            u[n] = q.u
            p[n] = q.p

        return rho, u, p


if __name__ == "__main__":

    q_l = RiemannData.from_primitive(rho=1.0, u=0.0, p=1.0)
    q_r = RiemannData.from_primitive(rho=0.125, u=0.0, p=0.1)

    rp = ExactRiemannProblem(q_l, q_r, gamma=1.4)

    rp.find_star_state()
    print(rp.sample_solution())
    print(rp.wave_speeds())
