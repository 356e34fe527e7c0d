"""
Post-processing of boundary nodes after a step.
"""


import numpy as np


BOUNDARY_KINDS = ("do-nothing", "periodic", "slip", "dirichlet")


class BoundaryMap:
    """The boundary nodes with their outward unit normal and boundary kind

    Parameters
    ----------
    nodes : ndarray
        the indices of the boundary nodes.
    normals : ndarray
        outward normals of shape (n_boundary, dim).  They are normalized
        here.
    kinds : str or list of str
        the kind of every boundary node, or a single kind for all of them.
        Allowed values are: "do-nothing", "periodic", "slip", "dirichlet"
    positions : ndarray, optional
        the coordinates of the boundary nodes, passed to `prescribed`.
    prescribed : function, optional
        the state to enforce on dirichlet nodes.  This has the signature
        `U = prescribed(positions, t)` and returns an array of shape
        (n, nvar).
    """

    def __init__(self, nodes, normals, kinds, *, positions=None, prescribed=None):

        self.nodes = np.asarray(nodes, dtype=np.intp).ravel()
        n = len(self.nodes)

        normals = np.asarray(normals, dtype=np.float64).reshape(n, -1)
        norm = np.sqrt(np.sum(normals**2, axis=-1))
        if np.any(norm == 0.0):
            raise ValueError("boundary normals must not vanish")
        self.normals = normals / norm[:, np.newaxis]

        if isinstance(kinds, str):
            kinds = n * [kinds]
        if len(kinds) != n:
            raise ValueError("need exactly one boundary kind per node")
        for kind in kinds:
            if kind not in BOUNDARY_KINDS:
                raise ValueError(f"invalid boundary kind {kind}")
        self.kinds = np.asarray(kinds)

        if positions is not None:
            positions = np.asarray(positions, dtype=np.float64).reshape(n, -1)
        self.positions = positions

        if np.any(self.kinds == "dirichlet") and (prescribed is None or positions is None):
            raise ValueError("dirichlet nodes need positions and a prescribed state")
        self.prescribed = prescribed

    def __len__(self):
        return len(self.nodes)

    def __str__(self):
        return f"boundary: {len(self)} nodes of kind {sorted(set(self.kinds))}"


def apply_boundary_conditions(problem, boundary_map, U, t=0.0):
    """ return a copy of U with the boundary conditions enforced

    Parameters
    ----------
    problem : ProblemDescription
        the state layout.
    boundary_map : BoundaryMap
        the boundary nodes.
    U : ndarray
        the state of all nodes.
    t : float, optional
        the time of U, used for prescribed states.

    Returns
    -------
    ndarray
    """

    U = U.copy()

    slip = boundary_map.kinds == "slip"
    if np.any(slip):
        # remove the normal component of the momentum
        nodes = boundary_map.nodes[slip]
        n = boundary_map.normals[slip]
        m = problem.momentum(U[nodes])
        m_n = np.sum(m * n, axis=-1)
        U[nodes, problem.umx:problem.uener] = m - m_n[:, np.newaxis] * n

    dirichlet = boundary_map.kinds == "dirichlet"
    if np.any(dirichlet):
        nodes = boundary_map.nodes[dirichlet]
        U[nodes] = boundary_map.prescribed(boundary_map.positions[dirichlet], t)

    # do-nothing and periodic nodes are left alone

    return U


def line_boundary(graph, kind, *, prescribed=None):
    """the boundary map of the two end nodes of a (non periodic) line graph

    Parameters
    ----------
    graph : Graph
        a graph created by `line_graph`.
    kind : str
        the boundary kind of both ends.
    prescribed : function, optional
        the prescribed state for dirichlet ends.

    Returns
    -------
    BoundaryMap
    """

    nodes = np.array([0, graph.n_nodes - 1])
    normals = np.array([[-1.0], [1.0]])

    positions = None
    if graph.points is not None:
        positions = graph.points[nodes]

    return BoundaryMap(nodes, normals, kind, positions=positions, prescribed=prescribed)
