"""
The computational graph: nodes with lumped masses, and undirected edges
carrying the c_ij weights of the discretization.

Every undirected edge (i, j) is stored exactly once with i < j together
with a single vector c_ij.  The mirrored weight is read as c_ji = -c_ij
and the diagonal weight c_ii vanishes, so the two copies can never
diverge.
"""


import numpy as np
from scipy import sparse


class Graph:
    """The connectivity and weights consumed by the time stepping.  This
    is built once per mesh and is read-only afterwards.

    Parameters
    ----------
    n_nodes : int
        number of nodes.
    edges : ndarray
        integer array of shape (n_edges, 2) holding one (i, j) pair per
        undirected edge.
    cij : ndarray
        array of shape (n_edges, dim) holding c_ij for the pair (i, j)
        as given in `edges`.
    lumped_mass : ndarray
        the lumped mass m_i > 0 of every node.
    points : ndarray, optional
        node coordinates of shape (n_nodes, dim), only used for
        initial values, boundary data and plotting.
    """

    def __init__(self, n_nodes, edges, cij, lumped_mass, *, points=None):

        edges = np.asarray(edges, dtype=np.intp).reshape(-1, 2)
        cij = np.asarray(cij, dtype=np.float64)
        if cij.ndim == 1:
            cij = cij[:, np.newaxis]

        lumped_mass = np.asarray(lumped_mass, dtype=np.float64)

        if cij.shape[0] != edges.shape[0]:
            raise ValueError("need exactly one c_ij per edge")

        if lumped_mass.shape != (n_nodes,):
            raise ValueError("need exactly one lumped mass per node")

        if np.any(lumped_mass <= 0.0):
            raise ValueError("lumped masses have to be positive")

        if edges.size > 0 and (edges.min() < 0 or edges.max() >= n_nodes):
            raise ValueError("edge index out of range")

        if np.any(edges[:, 0] == edges[:, 1]):
            raise ValueError("self-loops are implicit and must not be listed")

        cij_norm = np.sqrt(np.sum(cij**2, axis=-1))
        if np.any(cij_norm == 0.0):
            raise ValueError("zero-norm c_ij: the direction n_ij is undefined")

        # orient every edge so that i < j, flipping the sign of c_ij
        swap = edges[:, 0] > edges[:, 1]
        self.ei = np.where(swap, edges[:, 1], edges[:, 0])
        self.ej = np.where(swap, edges[:, 0], edges[:, 1])
        self.cij = np.where(swap[:, np.newaxis], -cij, cij)

        keys = self.ei * n_nodes + self.ej
        if np.unique(keys).size != keys.size:
            raise ValueError("duplicate edge")

        self.n_nodes = n_nodes
        self.n_edges = edges.shape[0]
        self.dim = cij.shape[1]

        self.cij_norm = cij_norm
        self.nij = self.cij / cij_norm[:, np.newaxis]

        self.mass = lumped_mass

        # number of off-diagonal neighbors
        self.degree = np.bincount(self.ei, minlength=n_nodes) + \
            np.bincount(self.ej, minlength=n_nodes)

        if points is not None:
            points = np.asarray(points, dtype=np.float64).reshape(n_nodes, -1)
        self.points = points

    def __str__(self):
        return f"graph: {self.n_nodes} nodes, {self.n_edges} edges, dim = {self.dim}"

    @classmethod
    def from_matrices(cls, cij, lumped_mass, *, points=None, rtol=1.e-12):
        """Build the graph from assembled sparse c_ij matrices, one per
        spatial dimension.

        The pattern has to be symmetric and the values antisymmetric,
        c_ij = -c_ji, up to the relative tolerance rtol.  Diagonal entries
        are ignored.

        Parameters
        ----------
        cij : list of sparse matrices
            the matrix of every component of c_ij.
        lumped_mass : ndarray
            the lumped mass of every node.
        points : ndarray, optional
            node coordinates.
        rtol : float, optional
            tolerance of the antisymmetry check.

        Returns
        -------
        Graph
        """

        matrices = [sparse.csr_matrix(c) for c in cij]
        n = matrices[0].shape[0]

        rows = []
        cols = []
        for c in matrices:
            if c.shape != (n, n):
                raise ValueError("c_ij matrices have to be square and of equal size")
            coo = c.tocoo()
            rows.append(coo.row)
            cols.append(coo.col)

        keys = np.unique(np.concatenate(rows).astype(np.intp) * n +
                         np.concatenate(cols).astype(np.intp))
        row = keys // n
        col = keys % n

        # the update only sees differences f_j - f_i, so c_ii drops out
        off_diagonal = row != col
        keys = keys[off_diagonal]
        row = row[off_diagonal]
        col = col[off_diagonal]

        values = np.stack([np.asarray(c[row, col], dtype=np.float64).ravel()
                           for c in matrices], axis=-1)

        mirror = col * n + row
        if not np.all(np.isin(mirror, keys)):
            raise ValueError("the sparsity pattern is not symmetric")

        scale = max(np.abs(values).max(), np.finfo(np.float64).tiny)
        mirror_values = values[np.searchsorted(keys, mirror)]
        if np.abs(values + mirror_values).max() > rtol * scale:
            raise ValueError("c_ij is not antisymmetric")

        upper = row < col
        return cls(n, np.stack([row[upper], col[upper]], axis=-1),
                   values[upper], lumped_mass, points=points)

    def directed_cij(self, sign):
        """return c_ij read from the perspective of the first (sign = +1)
        or second (sign = -1) node of every stored edge"""
        return sign * self.cij

    def scatter_add(self, values_i, values_j):
        """accumulate per-edge contributions into the nodes

        Parameters
        ----------
        values_i : ndarray
            contribution of every edge (i, j) to node i.
        values_j : ndarray
            contribution of every edge (i, j) to node j.

        Returns
        -------
        ndarray
            the sum over all incident edges for every node.
        """

        values_i = np.asarray(values_i)
        out = np.zeros((self.n_nodes,) + values_i.shape[1:], dtype=values_i.dtype)
        np.add.at(out, self.ei, values_i)
        np.add.at(out, self.ej, values_j)
        return out

    def neighbor_min(self, values):
        """return the minimum of a nodal quantity over the neighborhood N(i),
        node i included"""

        out = np.array(values, dtype=np.float64, copy=True)
        np.minimum.at(out, self.ei, values[self.ej])
        np.minimum.at(out, self.ej, values[self.ei])
        return out

    def neighbor_max(self, values):
        """return the maximum of a nodal quantity over the neighborhood N(i),
        node i included"""

        out = np.array(values, dtype=np.float64, copy=True)
        np.maximum.at(out, self.ei, values[self.ej])
        np.maximum.at(out, self.ej, values[self.ei])
        return out


def line_graph(nx, *, xmin=0.0, xmax=1.0, periodic=False):
    """the graph of continuous linear finite elements with mass lumping
    on a uniform 1D mesh

    Parameters
    ----------
    nx : int
        number of nodes.
    xmin : float, optional
        minimum x-coordinate.
    xmax : float, optional
        maximum x-coordinate.
    periodic : bool, optional
        connect the last node to the first one.  In this case the
        node at xmax is identified with the one at xmin and not stored.

    Returns
    -------
    Graph
    """

    if periodic:
        assert nx >= 3
        dx = (xmax - xmin) / nx
        mass = np.full(nx, dx)
        i = np.arange(nx)
        edges = np.stack([i, (i + 1) % nx], axis=-1)
    else:
        assert nx >= 2
        dx = (xmax - xmin) / (nx - 1)
        mass = np.full(nx, dx)
        mass[0] = mass[-1] = 0.5 * dx
        i = np.arange(nx - 1)
        edges = np.stack([i, i + 1], axis=-1)

    # c_{i,i+1} = int phi_i phi_{i+1}' dx = 1/2
    cij = np.full((len(edges), 1), 0.5)

    points = xmin + np.arange(nx) * dx
    return Graph(nx, edges, cij, mass, points=points)


def grid_graph(nx, ny, *, xmin=0.0, xmax=1.0, ymin=0.0, ymax=1.0, periodic=True):
    """a 2D Cartesian five-point graph whose c_ij reproduce centered
    differences

    Parameters
    ----------
    nx, ny : int
        number of nodes in each direction.
    xmin, xmax, ymin, ymax : float, optional
        extent of the domain.
    periodic : bool, optional
        wrap around in both directions.

    Returns
    -------
    Graph
    """

    if periodic:
        assert nx >= 3 and ny >= 3
        dx = (xmax - xmin) / nx
        dy = (ymax - ymin) / ny
    else:
        assert nx >= 2 and ny >= 2
        dx = (xmax - xmin) / (nx - 1)
        dy = (ymax - ymin) / (ny - 1)

    ix, iy = np.meshgrid(np.arange(nx), np.arange(ny), indexing="ij")
    index = ix * ny + iy

    if periodic:
        east = np.stack([index.ravel(), ((ix + 1) % nx * ny + iy).ravel()], axis=-1)
        north = np.stack([index.ravel(), (ix * ny + (iy + 1) % ny).ravel()], axis=-1)
    else:
        east = np.stack([index[:-1, :].ravel(), index[1:, :].ravel()], axis=-1)
        north = np.stack([index[:, :-1].ravel(), index[:, 1:].ravel()], axis=-1)

    wx = np.ones(nx)
    wy = np.ones(ny)
    if not periodic:
        wx[0] = wx[-1] = 0.5
        wy[0] = wy[-1] = 0.5

    mass = (dx * dy * wx[:, np.newaxis] * wy[np.newaxis, :]).ravel()

    # sum_j f_j . c_ij / m_i is the centered difference of f at node i
    c_east = np.zeros((len(east), 2))
    c_east[:, 0] = 0.5 * dy * wy[(east[:, 0] % ny)]
    c_north = np.zeros((len(north), 2))
    c_north[:, 1] = 0.5 * dx * wx[(north[:, 0] // ny)]

    points = np.stack([(xmin + ix * dx).ravel(), (ymin + iy * dy).ravel()], axis=-1)

    return Graph(nx * ny, np.concatenate([east, north]),
                 np.concatenate([c_east, c_north]), mass, points=points)
