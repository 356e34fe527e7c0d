import numpy as np
from numpy.testing import assert_allclose, assert_array_equal
import pytest

from idpeuler.graph import line_graph
from idpeuler.limiter import Bounds, Limiter, local_bounds
from idpeuler.problem_description import AdmissibilityError, ProblemDescription


def random_states(v, n, rng):
    return v.from_primitive(rng.uniform(0.1, 2.0, n),
                            rng.uniform(-1.0, 1.0, (n, v.dim)),
                            rng.uniform(0.1, 5.0, n))


class TestBounds:

    @classmethod
    def setup_class(cls):
        """ this is run once for each class before any tests """

    @classmethod
    def teardown_class(cls):
        """ this is run once for each class after all tests """

    def setup_method(self):
        """ this is run before each test """

        self.b = Bounds(rho_min=np.array([1.0, 2.0]), rho_max=np.array([3.0, 4.0]),
                        s_min=np.array([0.5, 0.6]))

    def teardown_method(self):
        """ this is run after each test """

    def test_defaults(self):
        assert_array_equal(self.b.salpha_avg, [0.0, 0.0])
        assert_array_equal(self.b.salpha_flux, [0.0, 0.0])

    def test_getitem(self):
        b = self.b[1]
        assert b.rho_min == 2.0
        assert b.rho_max == 4.0
        assert b.s_min == 0.6

    def test_relax(self):
        b = self.b.relax(0.1)
        assert_allclose(b.rho_min, [0.9, 1.8])
        assert_allclose(b.rho_max, [3.3, 4.4])
        assert_allclose(b.s_min, [0.45, 0.54])

        # the original is untouched
        assert_array_equal(self.b.rho_min, [1.0, 2.0])

    def test_str(self):
        assert "rho" in str(self.b)


class TestLocalBounds:

    @classmethod
    def setup_class(cls):
        """ this is run once for each class before any tests """

    @classmethod
    def teardown_class(cls):
        """ this is run once for each class after all tests """

    def setup_method(self):
        """ this is run before each test """

        self.v = ProblemDescription(1)
        self.g = line_graph(4)

        self.U = self.v.from_primitive(np.array([1.0, 2.0, 3.0, 4.0]),
                                       np.zeros((4, 1)), np.ones(4))

    def teardown_method(self):
        """ this is run after each test """

    def test_neighborhood(self):

        b = local_bounds(self.g, self.v, self.U)

        assert_array_equal(b.rho_min, [1.0, 1.0, 2.0, 3.0])
        assert_array_equal(b.rho_max, [2.0, 3.0, 4.0, 4.0])

        s = self.v.specific_entropy(self.U)
        assert_array_equal(b.s_min, [s[1], s[2], s[3], s[3]])

    def test_relaxation(self):

        b = local_bounds(self.g, self.v, self.U)
        b_relaxed = local_bounds(self.g, self.v, self.U, relaxation=0.1)

        assert_allclose(b_relaxed.rho_min, 0.9 * b.rho_min)
        assert_allclose(b_relaxed.rho_max, 1.1 * b.rho_max)


class TestLimiter:

    @classmethod
    def setup_class(cls):
        """ this is run once for each class before any tests """

    @classmethod
    def teardown_class(cls):
        """ this is run once for each class after all tests """

    def setup_method(self):
        """ this is run before each test """

        self.v = ProblemDescription(2)
        rng = np.random.default_rng(2018)

        self.n = 200
        self.U = random_states(self.v, self.n, rng)

        # the corrections overshoot another admissible state by a factor 2
        self.P = 2.0 * (random_states(self.v, self.n, rng) - self.U)

        self.bounds = Bounds(rho_min=0.8 * self.v.density(self.U),
                             rho_max=1.2 * self.v.density(self.U),
                             s_min=0.8 * self.v.specific_entropy(self.U),
                             salpha_avg=0.8 * self.v.harten_entropy(self.U))

    def teardown_method(self):
        """ this is run after each test """

    def test_invalid(self):

        with pytest.raises(ValueError):
            Limiter(self.v, families=("rho", "pressure"))
        with pytest.raises(ValueError):
            Limiter(self.v, newton_max_iter=-1)
        with pytest.raises(ValueError):
            Limiter(self.v, newton_eps=0.0)

    def test_no_correction(self):

        limiter = Limiter(self.v, families=("rho", "specific_entropy", "entropy_inequality"))
        t = limiter.limit(self.bounds, self.U, np.zeros_like(self.U))

        assert_array_equal(t, np.ones(self.n))

    def test_density(self):

        limiter = Limiter(self.v, families=("rho",))
        t = limiter.limit(self.bounds, self.U, self.P)

        assert np.all(t > 0.0)
        assert np.all(t <= 1.0)
        assert np.any(t < 1.0)

        rho = self.v.density(self.U + t[:, np.newaxis] * self.P)
        assert np.all(rho >= self.bounds.rho_min * (1.0 - 1.e-12))
        assert np.all(rho <= self.bounds.rho_max * (1.0 + 1.e-12))

        # the density bound is sharp, a limited lane sits on one of the bounds
        limited = t < 1.0
        on_bound = np.logical_or(np.isclose(rho, self.bounds.rho_min, rtol=1.e-12),
                                 np.isclose(rho, self.bounds.rho_max, rtol=1.e-12))
        assert np.all(on_bound[limited])

    def test_specific_entropy(self):

        limiter = Limiter(self.v)
        t = limiter.limit(self.bounds, self.U, self.P)

        assert np.all(t > 0.0)
        assert np.all(t <= 1.0)

        W = self.U + t[:, np.newaxis] * self.P

        rho = self.v.density(W)
        assert np.all(rho >= self.bounds.rho_min * (1.0 - 1.e-12))
        assert np.all(rho <= self.bounds.rho_max * (1.0 + 1.e-12))

        s = self.v.specific_entropy(W)
        assert np.all(s >= self.bounds.s_min * (1.0 - 1.e-10))

        # adding a family can only shrink t
        t_rho = Limiter(self.v, families=("rho",)).limit(self.bounds, self.U, self.P)
        assert np.all(t <= t_rho)

    def test_specific_entropy_sharp(self):

        families = ("rho", "specific_entropy")
        t = Limiter(self.v, families=families).limit(self.bounds, self.U, self.P)

        # without Newton steps only the secant quadratic is solved
        t_secant = Limiter(self.v, families=families,
                           newton_max_iter=0).limit(self.bounds, self.U, self.P)

        # the largest admissible t by bisection on s(U + t P) >= s_min
        t_lo = np.zeros(self.n)
        t_hi = Limiter(self.v, families=("rho",)).limit(self.bounds, self.U, self.P)

        def admissible(t):
            s = self.v.specific_entropy(self.U + t[:, np.newaxis] * self.P)
            return s >= self.bounds.s_min

        full = admissible(t_hi)
        for _ in range(60):
            t_m = 0.5 * (t_lo + t_hi)
            ok = admissible(t_m)
            t_lo = np.where(ok, t_m, t_lo)
            t_hi = np.where(ok, t_hi, t_m)
        t_best = np.where(full, t_hi, t_lo)

        assert np.all(t >= t_secant)
        assert np.all(t <= t_best + 1.e-8)

        gap = np.mean(t_best - t)
        gap_secant = np.mean(t_best - t_secant)
        assert gap_secant > 0.0
        assert gap <= 0.25 * gap_secant

    def test_entropy_inequality(self):

        limiter = Limiter(self.v, families=("rho", "entropy_inequality"))
        t = limiter.limit(self.bounds, self.U, self.P)

        assert np.all(t >= 0.0)
        assert np.any(t > 0.0)
        assert np.all(t <= 1.0)

        W = self.U + t[:, np.newaxis] * self.P
        salpha = self.v.harten_entropy(W)
        assert np.all(salpha >= self.bounds.salpha_avg * (1.0 - 1.e-10))

    def test_entropy_inequality_slope(self):

        # a positive slope b makes the inequality harder to satisfy
        bounds = Bounds(rho_min=self.bounds.rho_min, rho_max=self.bounds.rho_max,
                        s_min=self.bounds.s_min, salpha_avg=self.bounds.salpha_avg,
                        salpha_flux=0.1 * self.v.harten_entropy(self.U))

        limiter = Limiter(self.v, families=("rho", "entropy_inequality"))
        t = limiter.limit(bounds, self.U, self.P)

        W = self.U + t[:, np.newaxis] * self.P
        salpha = self.v.harten_entropy(W)
        assert np.all(salpha >= (bounds.salpha_avg + t * bounds.salpha_flux) -
                      1.e-10 * bounds.salpha_avg)

    def test_interval(self):

        limiter = Limiter(self.v)
        t = limiter.limit(self.bounds, self.U, self.P, t_min=0.0, t_max=0.25)

        assert np.all(t <= 0.25)

    def test_infeasible(self):

        # the provisional state violates the bounds already
        bounds = Bounds(rho_min=2.0 * self.v.density(self.U),
                        rho_max=3.0 * self.v.density(self.U),
                        s_min=self.bounds.s_min)

        t = Limiter(self.v).limit(bounds, self.U, self.P, t_min=0.0)
        assert_array_equal(t, np.zeros(self.n))

        with pytest.raises(AdmissibilityError):
            Limiter(self.v, check_bounds=True).limit(bounds, self.U, self.P)
