"""
A bracketing quadratic Newton step shared by the Riemann solver and the
limiter.
"""


import numpy as np


EPS = np.finfo(np.float64).eps


def quadratic_newton_step(p_1, p_2, phi_1, phi_2, dphi_1, dphi_2, sign=1.0):
    """Perform one quadratic Newton step that shrinks a bracket
    p_1 <= p* <= p_2 around the root p* of a concave function phi.

    The left point is advanced with the quadratic model built from
    phi(p_1), phi'(p_1) and the divided difference phi[p_1, p_1, p_2],
    the right point with phi(p_2), phi'(p_2) and phi[p_1, p_2, p_2].
    See Guermond & Popov, J. Comput. Phys. 321 (2016), (4.8)-(4.9).

    Parameters
    ----------
    p_1, p_2 : ndarray
        the current bracket, p_1 <= p_2.
    phi_1, phi_2 : ndarray
        phi evaluated at p_1 and p_2.
    dphi_1, dphi_2 : ndarray
        phi' evaluated at p_1 and p_2.
    sign : float, optional
        +1 for an increasing phi (phi(p_1) <= 0 <= phi(p_2)), -1 for a
        decreasing phi (phi(p_1) >= 0 >= phi(p_2)).

    Returns
    -------
    p_1_new, p_2_new : ndarray
        the new bracket, p_1 <= p_1_new <= p_2_new <= p_2.
    """

    if sign < 0:
        # reflect t -> -t, which turns a decreasing phi into an increasing one
        q_1, q_2 = quadratic_newton_step(-p_2, -p_1, phi_2, phi_1, -dphi_2, -dphi_1)
        return -q_2, -q_1

    p_1 = np.asarray(p_1, dtype=np.float64)
    p_2 = np.asarray(p_2, dtype=np.float64)

    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):

        scaling = 1.0 / (p_2 - p_1 + EPS)

        # divided differences
        dd_11 = dphi_1
        dd_12 = (phi_2 - phi_1) * scaling
        dd_22 = dphi_2

        dd_112 = (dd_12 - dd_11) * scaling
        dd_122 = (dd_22 - dd_12) * scaling

        discriminant_1 = np.abs(dd_11 * dd_11 - 4.0 * phi_1 * dd_112)
        discriminant_2 = np.abs(dd_22 * dd_22 - 4.0 * phi_2 * dd_122)

        denominator_1 = dd_11 + np.sqrt(discriminant_1)
        denominator_2 = dd_22 + np.sqrt(discriminant_2)

        t_1 = p_1 - 2.0 * phi_1 / denominator_1
        t_2 = p_2 - 2.0 * phi_2 / denominator_2

    # a degenerate bracket produces 0/0, in which case we keep the old point
    t_1 = np.where(np.isfinite(t_1), t_1, p_1)
    t_2 = np.where(np.isfinite(t_2), t_2, p_2)

    p_1_new = np.clip(t_1, p_1, p_2)
    p_2_new = np.clip(t_2, p_1_new, p_2)

    return p_1_new, p_2_new
