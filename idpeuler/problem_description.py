"""
The ideal gas description of the compressible Euler equations: the
layout of the conserved state, the equation of state, and the flux.

All functions act on the last axis of the state array, so a single
state of shape (nvar,) and a whole graph of shape (n_nodes, nvar) go
through the same code.
"""


import numpy as np


class AdmissibilityError(ArithmeticError):
    """Raised by the optional debug checks when a state leaves the
    admissible set (positive density, non-negative internal energy)."""


class ProblemDescription:
    """The integer indices of the conserved variables together with the
    ideal gas equation of state

    Parameters
    ----------
    dim : int
        spatial dimension, 1, 2, or 3.
    gamma : float, optional
        ratio of specific heats.
    b : float, optional
        covolume of the Noble-Abel equation of state.  Only the ideal
        gas, b = 0, is implemented.
    """

    def __init__(self, dim=1, *, gamma=1.4, b=0.0):

        if dim not in (1, 2, 3):
            raise ValueError(f"invalid dimension {dim}")

        if gamma <= 1.0:
            raise ValueError("the ratio of specific heats must be > 1")

        if b != 0.0:
            raise ValueError("a nonzero covolume b is not implemented")

        self.dim = dim
        self.gamma = gamma
        self.b = b

        self.nvar = dim + 2

        # conserved variables
        self.urho = 0
        self.umx = 1
        self.uener = dim + 1

        self.cons_names = ["rho"] + ["mx", "my", "mz"][:dim] + ["E"]
        self.prim_names = ["rho"] + ["u", "v", "w"][:dim] + ["p"]

    def __str__(self):
        return f"ideal gas: dim = {self.dim}, gamma = {self.gamma}"

    def density(self, U):
        return U[..., self.urho]

    def momentum(self, U):
        return U[..., self.umx:self.uener]

    def total_energy(self, U):
        return U[..., self.uener]

    def internal_energy(self, U):
        """return the internal energy per unit volume, rho e"""
        m = self.momentum(U)
        return self.total_energy(U) - 0.5 * np.sum(m * m, axis=-1) / self.density(U)

    def pressure(self, U):
        return (self.gamma - 1.0) * self.internal_energy(U)

    def speed_of_sound(self, U):
        return np.sqrt(self.gamma * self.pressure(U) / self.density(U))

    def specific_entropy(self, U):
        """return the specific entropy s = rho e rho^(-gamma)

        This is a monotone function of the physical entropy and is
        quasi-concave in U, so {s >= s_min} is a convex set.
        """
        rho = self.density(U)
        return self.internal_energy(U) * rho**(-self.gamma)

    def harten_entropy(self, U):
        """return Harten's entropy (rho^2 e)^(1/(gamma+1)), which is a
        concave function of the conserved state"""
        rho = self.density(U)
        m = self.momentum(U)
        rho_rho_e = rho * self.total_energy(U) - 0.5 * np.sum(m * m, axis=-1)
        return np.maximum(rho_rho_e, 0.0)**(1.0 / (self.gamma + 1.0))

    def f(self, U):
        """return the flux tensor of the conserved state

        Parameters
        ----------
        U : ndarray
            conserved state of shape (..., nvar).

        Returns
        -------
        ndarray
            the flux of shape (..., nvar, dim).
        """

        rho = self.density(U)
        m = self.momentum(U)
        E = self.total_energy(U)

        u = m / rho[..., np.newaxis]
        p = self.pressure(U)

        flux = np.empty(U.shape + (self.dim,), dtype=np.float64)
        flux[..., self.urho, :] = m
        flux[..., self.umx:self.uener, :] = m[..., :, np.newaxis] * u[..., np.newaxis, :]
        for k in range(self.dim):
            flux[..., self.umx + k, k] += p
        flux[..., self.uener, :] = u * (E + p)[..., np.newaxis]

        return flux

    def from_primitive(self, rho, u, p):
        """build the conserved state from density, velocity and pressure

        Parameters
        ----------
        rho : ndarray
            density.
        u : ndarray
            velocity with a trailing axis of length dim.
        p : ndarray
            pressure.

        Returns
        -------
        ndarray
            the conserved state with a trailing axis of length nvar.
        """

        rho = np.asarray(rho, dtype=np.float64)
        u = np.asarray(u, dtype=np.float64)
        p = np.asarray(p, dtype=np.float64)

        shape = np.broadcast_shapes(rho.shape, u.shape[:-1], p.shape)
        U = np.empty(shape + (self.nvar,), dtype=np.float64)

        U[..., self.urho] = rho
        U[..., self.umx:self.uener] = rho[..., np.newaxis] * u
        U[..., self.uener] = p / (self.gamma - 1.0) + \
            0.5 * rho * np.sum(u * u, axis=-1)

        return U

    def to_primitive(self, U):
        """return the density, velocity and pressure of a conserved state"""

        rho = self.density(U)
        u = self.momentum(U) / rho[..., np.newaxis]
        return rho, u, self.pressure(U)

    def is_admissible(self, U):
        """return a boolean mask that is True where rho > 0 and rho e >= 0"""

        rho = self.density(U)
        with np.errstate(divide="ignore", invalid="ignore"):
            rho_e = self.internal_energy(U)
        return np.logical_and(rho > 0.0, rho_e >= 0.0)
