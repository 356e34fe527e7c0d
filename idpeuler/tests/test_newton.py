import numpy as np
from pytest import approx

from idpeuler.newton import quadratic_newton_step


class TestQuadraticNewton:

    @classmethod
    def setup_class(cls):
        """ this is run once for each class before any tests """

    @classmethod
    def teardown_class(cls):
        """ this is run once for each class after all tests """

    def setup_method(self):
        """ this is run before each test """

        # increasing and concave with root at sqrt(2)
        self.phi = lambda x: 2.0 - 4.0 / (x * x)
        self.dphi = lambda x: 8.0 / x**3

    def teardown_method(self):
        """ this is run after each test """

    def test_bracket_shrinks(self):

        p_1 = np.array([1.0])
        p_2 = np.array([3.0])

        for _ in range(4):
            p_1_new, p_2_new = quadratic_newton_step(p_1, p_2,
                                                     self.phi(p_1), self.phi(p_2),
                                                     self.dphi(p_1), self.dphi(p_2))

            assert np.all(p_1 <= p_1_new)
            assert np.all(p_1_new <= p_2_new)
            assert np.all(p_2_new <= p_2)

            p_1, p_2 = p_1_new, p_2_new

        assert p_1[0] <= np.sqrt(2.0) + 1.e-14
        assert p_2[0] >= np.sqrt(2.0) - 1.e-14
        assert p_2[0] - p_1[0] < 1.e-10
        assert p_1[0] == approx(np.sqrt(2.0), rel=1.e-12)

    def test_decreasing(self):

        # psi(t) = phi(4 - t) is decreasing and concave with root 4 - sqrt(2)
        psi = lambda t: self.phi(4.0 - t)
        dpsi = lambda t: -self.dphi(4.0 - t)

        t_1 = np.array([1.0])
        t_2 = np.array([3.0])

        for _ in range(4):
            t_1, t_2 = quadratic_newton_step(t_1, t_2, psi(t_1), psi(t_2),
                                             dpsi(t_1), dpsi(t_2), sign=-1.0)

        assert t_1[0] <= t_2[0]
        assert t_2[0] - t_1[0] < 1.e-10
        assert t_1[0] == approx(4.0 - np.sqrt(2.0), rel=1.e-12)

    def test_degenerate(self):

        # a collapsed bracket must stay where it is
        p = np.array([2.0])
        p_1, p_2 = quadratic_newton_step(p, p, self.phi(p), self.phi(p),
                                         self.dphi(p), self.dphi(p))

        assert p_1[0] == 2.0
        assert p_2[0] == 2.0
