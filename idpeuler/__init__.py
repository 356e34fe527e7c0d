"""
An explicit, invariant domain preserving solver for the compressible
Euler equations on unstructured graphs.  A low-order update with a
guaranteed upper bound on the local wave speeds is blended with a
high-order correction through a convex limiter.
"""

from ._version import version

__version__ = version


from .problem_description import AdmissibilityError, ProblemDescription
from .graph import Graph, line_graph, grid_graph
from .riemann_solver import RiemannData, RiemannSolver, GreedyRiemannSolver
from .limiter import Bounds, Limiter, local_bounds
from .boundary import BoundaryMap, apply_boundary_conditions, line_boundary
from .initial_values import InitialValues
from .riemann_exact import ExactRiemannProblem

from .euler_module import EulerModule
