import matplotlib.pyplot as plt
import numpy as np
from numpy.testing import assert_allclose, assert_array_equal
import pytest
from pytest import approx

from idpeuler.problem_description import AdmissibilityError, ProblemDescription
from idpeuler.riemann_exact import ExactRiemannProblem
from idpeuler.riemann_solver import (RiemannData, RiemannSolver, GreedyRiemannSolver,
                                     compute_gap, phi, plot_phi)


def random_pairs(n, dim=1, seed=1234):
    """n random pairs of admissible conserved states with unit directions"""

    rng = np.random.default_rng(seed)
    v = ProblemDescription(dim)

    U_i = v.from_primitive(rng.uniform(0.1, 2.0, n),
                           rng.uniform(-1.0, 1.0, (n, dim)),
                           rng.uniform(0.1, 5.0, n))
    U_j = v.from_primitive(rng.uniform(0.1, 2.0, n),
                           rng.uniform(-1.0, 1.0, (n, dim)),
                           rng.uniform(0.1, 5.0, n))

    n_ij = rng.normal(size=(n, dim))
    n_ij /= np.sqrt(np.sum(n_ij**2, axis=-1))[:, np.newaxis]

    return v, U_i, U_j, n_ij


class TestRiemannData:

    @classmethod
    def setup_class(cls):
        """ this is run once for each class before any tests """

    @classmethod
    def teardown_class(cls):
        """ this is run once for each class after all tests """

    def setup_method(self):
        """ this is run before each test """

    def teardown_method(self):
        """ this is run after each test """

    def test_from_state(self):

        v = ProblemDescription(2)
        U = v.from_primitive(1.5, np.array([0.3, 0.4]), 2.0)

        rd = RiemannData.from_state(v, U, np.array([0.0, 1.0]))

        assert rd.rho == 1.5
        assert rd.u == approx(0.4)
        assert rd.p == approx(2.0)
        assert rd.a == approx(np.sqrt(1.4 * 2.0 / 1.5))

    def test_getitem(self):

        rd = RiemannData.from_primitive(rho=np.array([1.0, 2.0]), u=np.array([0.0, 1.0]),
                                        p=np.array([1.0, 3.0]))
        assert rd[1].rho == 2.0
        assert rd[1].u == 1.0
        assert rd[1].p == 3.0


class TestRiemannSolver:

    @classmethod
    def setup_class(cls):
        """ this is run once for each class before any tests """

    @classmethod
    def teardown_class(cls):
        """ this is run once for each class after all tests """

    def setup_method(self):
        """ this is run before each test """

        self.rs = RiemannSolver(check_bounds=True)

        self.q_l = RiemannData.from_primitive(rho=1.0, u=0.0, p=1.0)
        self.q_r = RiemannData.from_primitive(rho=0.125, u=0.0, p=0.1)

    def teardown_method(self):
        """ this is run after each test """

    def test_invalid(self):

        with pytest.raises(ValueError):
            RiemannSolver(newton_max_iter=-1)
        with pytest.raises(ValueError):
            RiemannSolver(newton_eps=0.0)

    def test_identical_states(self):

        for u in [0.3, -0.3, 0.0]:
            q = RiemannData.from_primitive(rho=1.0, u=u, p=1.0)

            lambda_max, p_star, n_iter = self.rs.compute(q, q)

            assert p_star == 1.0
            assert n_iter == 0
            assert lambda_max == approx(abs(u) + np.sqrt(1.4), rel=1.e-14)

    def test_sod(self):

        lambda_max, p_star, n_iter = self.rs.compute(self.q_l, self.q_r)

        rp = ExactRiemannProblem(self.q_l, self.q_r, gamma=1.4)
        rp.find_star_state()
        lambda_1, lambda_3 = rp.wave_speeds()

        assert p_star >= rp.pstar - 1.e-10
        assert p_star == approx(0.30313017805064685, rel=1.e-5)

        assert lambda_max >= max(lambda_3, -lambda_1) * (1.0 - 1.e-10)
        assert lambda_max == approx(lambda_3, rel=1.e-5)

        assert 0 < n_iter <= 2

    def test_phi_monotone(self):

        v, U_i, U_j, n_ij = random_pairs(20)
        rd_i = RiemannData.from_state(v, U_i, n_ij)
        rd_j = RiemannData.from_state(v, U_j, n_ij)

        p = np.linspace(1.e-3, 10.0, 400)

        for k in range(20):
            values = phi(rd_i[k], rd_j[k], p, v.gamma)
            assert np.all(np.diff(values) > 0.0)

    def test_upper_bound(self):

        v, U_i, U_j, n_ij = random_pairs(50)
        rd_i = RiemannData.from_state(v, U_i, n_ij)
        rd_j = RiemannData.from_state(v, U_j, n_ij)

        for newton_max_iter in [0, 1, 2, 4]:
            rs = RiemannSolver(v, newton_max_iter=newton_max_iter, check_bounds=True)
            lambda_max, p_star, n_iter = rs.compute(rd_i, rd_j)

            assert np.all(n_iter <= newton_max_iter)

            for k in range(50):
                rp = ExactRiemannProblem(rd_i[k], rd_j[k], gamma=v.gamma)
                rp.find_star_state()
                lambda_1, lambda_3 = rp.wave_speeds()

                assert p_star[k] >= rp.pstar - 1.e-10
                assert lambda_max[k] >= max(lambda_3, -lambda_1, 0.0) * (1.0 - 1.e-8)

    def test_zero_iterations(self):

        rs = RiemannSolver(newton_max_iter=0)
        lambda_max, p_star, n_iter = rs.compute(self.q_l, self.q_r)

        assert n_iter == 0

        # the two-rarefaction estimate is an upper bound, but a loose one
        lambda_sharp, _, _ = self.rs.compute(self.q_l, self.q_r)
        assert lambda_max >= lambda_sharp * (1.0 - 1.e-12)

    def test_symmetry(self):

        v, U_i, U_j, n_ij = random_pairs(40, dim=2)
        rs = RiemannSolver(v)

        lambda_ij, p_ij, _ = rs.compute_states(U_i, U_j, n_ij)
        lambda_ji, p_ji, _ = rs.compute_states(U_j, U_i, -n_ij)

        assert_allclose(lambda_ij, lambda_ji, rtol=1.e-8)
        assert_allclose(p_ij, p_ji, rtol=1.e-8)

    def test_zero_pressure(self):

        # p = 0 is an admissible state on either side of the interface
        q_0 = RiemannData.from_primitive(rho=1.0, u=0.0, p=0.0)

        for rd_i, rd_j in [(self.q_l, q_0), (q_0, self.q_l)]:
            lambda_max, p_star, n_iter = self.rs.compute(rd_i, rd_j)

            assert np.isfinite(lambda_max)
            assert 0.0 <= p_star <= 1.0
            assert lambda_max >= np.sqrt(1.4)

        # the same holds for the projected conserved states
        v = ProblemDescription(2)
        U_i = v.from_primitive(np.array([1.0, 0.5]), np.array([[0.2, 0.0], [-1.0, 0.5]]),
                               np.array([1.0, 0.0]))
        U_j = v.from_primitive(np.array([0.1, 2.0]), np.array([[0.0, 0.0], [1.0, 0.0]]),
                               np.array([0.0, 2.0]))

        lambda_max, p_star, _ = RiemannSolver(v, check_bounds=True).compute_states(
            U_i, U_j, np.array([[1.0, 0.0], [0.0, 1.0]]))

        assert np.all(np.isfinite(lambda_max))
        assert np.all(np.isfinite(p_star))
        assert np.all(lambda_max > 0.0)

    def test_gap(self):

        p = np.array(0.5)
        gap, lambda_max = compute_gap(self.q_l, self.q_r, p, p, 1.4)

        assert gap == 0.0
        assert lambda_max > 0.0

    def test_check_bounds(self):

        # half the star pressure is not an upper bound
        with pytest.raises(AdmissibilityError):
            self.rs.check_pressure(self.q_l, self.q_r, np.array(0.15))

    def test_plot(self):

        fig = plot_phi(self.rs, self.q_l, self.q_r)
        assert fig is not None
        plt.close(fig)


class TestGreedyRiemannSolver:

    @classmethod
    def setup_class(cls):
        """ this is run once for each class before any tests """

    @classmethod
    def teardown_class(cls):
        """ this is run once for each class after all tests """

    def setup_method(self):
        """ this is run before each test """

        self.v = ProblemDescription(1)
        self.rs = RiemannSolver(self.v)
        self.greedy = GreedyRiemannSolver(self.v, check_bounds=True)

    def teardown_method(self):
        """ this is run after each test """

    def test_invalid(self):

        with pytest.raises(ValueError):
            GreedyRiemannSolver(self.v, greedy_threshold=1.5)

    def test_sod(self):

        U_i = self.v.from_primitive(1.0, np.array([0.0]), 1.0)
        U_j = self.v.from_primitive(0.125, np.array([0.0]), 0.1)
        n_ij = np.array([1.0])

        lambda_max, _, _ = self.rs.compute_states(U_i, U_j, n_ij)
        lambda_greedy, _, _ = self.greedy.compute_states(U_i, U_j, n_ij)

        assert 0.0 < lambda_greedy <= lambda_max

    def test_bounded_by_lambda_max(self):

        v, U_i, U_j, n_ij = random_pairs(50, dim=2, seed=42)
        rs = RiemannSolver(v)
        greedy = GreedyRiemannSolver(v, check_bounds=True)

        lambda_max, p_max, _ = rs.compute_states(U_i, U_j, n_ij)
        lambda_greedy, p_greedy, _ = greedy.compute_states(U_i, U_j, n_ij)

        assert np.all(lambda_greedy > 0.0)
        assert np.all(lambda_greedy <= lambda_max)
        assert_array_equal(p_greedy, p_max)

    def test_low_contrast(self):

        # densities within the threshold keep the regular bound
        U_i = self.v.from_primitive(np.array([1.0]), np.array([[0.5]]), np.array([1.0]))
        U_j = self.v.from_primitive(np.array([0.95]), np.array([[-0.5]]), np.array([2.0]))
        n_ij = np.array([[1.0]])

        lambda_max, _, _ = self.rs.compute_states(U_i, U_j, n_ij)
        lambda_greedy, _, _ = self.greedy.compute_states(U_i, U_j, n_ij)

        assert_array_equal(lambda_greedy, lambda_max)

    def test_symmetry(self):

        v, U_i, U_j, n_ij = random_pairs(200, dim=2, seed=7)
        greedy = GreedyRiemannSolver(v)

        lambda_ij, p_ij, _ = greedy.compute_states(U_i, U_j, n_ij)
        lambda_ji, p_ji, _ = greedy.compute_states(U_j, U_i, -n_ij)

        assert_allclose(lambda_ij, lambda_ji, rtol=1.e-14)
        assert_allclose(p_ij, p_ji, rtol=1.e-14)
