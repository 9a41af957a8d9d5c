import logging
import numpy as np
from app_config import DEFAULT_WIDTH, DEFAULT_HEIGHT, DEFAULT_VISUAL_SETTINGS
from TradeGraph.node_style import is_small_viewport, collision_radius, link_distance, charge_strength


SEEDING = "seeding"
RUNNING = "running"
SETTLED = "settled"
PERTURBED = "perturbed"


class ForceSimulation:
    """
    Force-directed layout over the wallet graph.

    Positions, velocities and pins live in numpy arrays indexed like
    `nodes`; the node dicts only receive positions through `sync_nodes()`.
    Each tick cools `alpha` toward `alpha_target` and applies, in order,
    link attraction, many-body repulsion, centering and collision.
    """

    ALPHA_MIN = 0.001
    ALPHA_DECAY = 1 - ALPHA_MIN ** (1 / 300)
    VELOCITY_DECAY = 0.4
    DRAG_ALPHA_TARGET = 0.3
    COLLIDE_ITERATIONS = 2
    COLLIDE_STRENGTH = 1.0
    DISTANCE_MIN2 = 1.0

    def __init__(self, nodes: list[dict], links: list[dict], width: float = DEFAULT_WIDTH,
                 height: float = DEFAULT_HEIGHT,
                 force_strength: int = DEFAULT_VISUAL_SETTINGS["force_strength"],
                 node_size_scale: int = DEFAULT_VISUAL_SETTINGS["node_size_scale"],
                 rng: np.random.Generator = None):
        self.nodes = nodes
        self.links = links
        self.rng = rng or np.random.default_rng()
        self.logger = logging.getLogger("force_simulation")

        self.index = {node["id"]: i for i, node in enumerate(nodes)}
        n = len(nodes)

        self.x = np.array([node.get("x", np.nan) for node in nodes], dtype=float)
        self.y = np.array([node.get("y", np.nan) for node in nodes], dtype=float)
        missing = ~(np.isfinite(self.x) & np.isfinite(self.y))
        if missing.any():
            self.x[missing] = self.rng.uniform(0, width, missing.sum())
            self.y[missing] = self.rng.uniform(0, height, missing.sum())

        self.vx = np.zeros(n)
        self.vy = np.zeros(n)
        self.fx = np.full(n, np.nan)
        self.fy = np.full(n, np.nan)
        self.normalized_size = np.array([node.get("normalized_size", 1.0) for node in nodes], dtype=float)

        pairs = [(self.index[link["source"]], self.index[link["target"]]) for link in links
                 if link["source"] in self.index and link["target"] in self.index]
        self.source = np.array([s for s, _ in pairs], dtype=int)
        self.target = np.array([t for _, t in pairs], dtype=int)

        count = np.bincount(self.source, minlength=n) + np.bincount(self.target, minlength=n)
        if len(pairs):
            self.link_strength = 1 / np.minimum(count[self.source], count[self.target])
            self.link_bias = count[self.source] / (count[self.source] + count[self.target])
        else:
            self.link_strength = np.zeros(0)
            self.link_bias = np.zeros(0)

        self.alpha = 1.0
        self.alpha_target = 0.0
        self.state = SEEDING
        self.tick_count = 0

        self.configure(width, height, force_strength, node_size_scale)


    def configure(self, width: float = None, height: float = None, force_strength: int = None,
                  node_size_scale: int = None):
        """Recomputes force parameters; positions are kept"""
        if width is not None:
            self.width = width
        if height is not None:
            self.height = height
        if force_strength is not None:
            self.force_strength = force_strength
        if node_size_scale is not None:
            self.node_size_scale = node_size_scale

        small = is_small_viewport(self.width)
        self.center = (self.width / 2, self.height / 2)
        self.link_distance = link_distance(small)
        self.charge = charge_strength(self.force_strength, small)
        self.radii = np.array([collision_radius(size, self.node_size_scale, small)
                               for size in self.normalized_size], dtype=float)


    def reheat(self, alpha: float = 1.0):
        self.alpha = alpha
        if self.state == SETTLED:
            self.state = RUNNING


    @property
    def is_settled(self) -> bool:
        return self.state == SETTLED


    # ----------------------
    # Pinning
    # ----------------------

    def pin(self, node_id: str, x: float = None, y: float = None):
        i = self.index[node_id]
        self.fx[i] = self.x[i] if x is None else x
        self.fy[i] = self.y[i] if y is None else y


    def unpin(self, node_id: str):
        i = self.index[node_id]
        self.fx[i] = np.nan
        self.fy[i] = np.nan


    def handle_message(self, message: dict):
        """Applies a drag event posted by the interaction layer"""
        kind = message["type"]
        node_id = message["node_id"]
        if node_id not in self.index:
            self.logger.warning(f"Ignoring {kind} for unknown node {node_id}")
            return

        if kind == "drag_start":
            self.alpha_target = self.DRAG_ALPHA_TARGET
            self.pin(node_id)
            self.state = PERTURBED
        elif kind == "drag":
            self.pin(node_id, message["x"], message["y"])
        elif kind == "drag_end":
            self.alpha_target = 0.0
            self.unpin(node_id)
            if self.state == PERTURBED:
                self.state = RUNNING
        else:
            raise ValueError(f"Unknown simulation message: {kind}")


    # ----------------------
    # Stepping
    # ----------------------

    def tick(self) -> str:
        if not self.nodes:
            self.state = SETTLED
            return self.state

        self.alpha += (self.alpha_target - self.alpha) * self.ALPHA_DECAY

        self._apply_link_force()
        self._apply_many_body_force()
        self._apply_center_force()
        for _ in range(self.COLLIDE_ITERATIONS):
            self._apply_collision_force()

        self.vx *= 1 - self.VELOCITY_DECAY
        self.vy *= 1 - self.VELOCITY_DECAY
        self.x += self.vx
        self.y += self.vy

        pinned = np.isfinite(self.fx)
        self.x[pinned] = self.fx[pinned]
        self.y[pinned] = self.fy[pinned]
        self.vx[pinned] = 0.0
        self.vy[pinned] = 0.0

        self.tick_count += 1
        if self.alpha_target > 0:
            self.state = PERTURBED
        elif self.alpha < self.ALPHA_MIN:
            self.state = SETTLED
        else:
            self.state = RUNNING
        return self.state


    def run(self, max_ticks: int = 1000) -> int:
        """Ticks until settled (or max_ticks); returns the number of ticks taken"""
        ticks = 0
        while ticks < max_ticks and not self.is_settled:
            self.tick()
            ticks += 1
        return ticks


    def _jiggle(self, values: np.ndarray) -> np.ndarray:
        zeros = values == 0
        if zeros.any():
            values = values.copy()
            values[zeros] = (self.rng.random(zeros.sum()) - 0.5) * 1e-6
        return values


    def _apply_link_force(self):
        if not len(self.source):
            return
        s, t = self.source, self.target
        dx = self._jiggle(self.x[t] + self.vx[t] - self.x[s] - self.vx[s])
        dy = self._jiggle(self.y[t] + self.vy[t] - self.y[s] - self.vy[s])
        distance = np.sqrt(dx * dx + dy * dy)
        k = (distance - self.link_distance) / distance * self.alpha * self.link_strength
        dx *= k
        dy *= k
        np.add.at(self.vx, t, -dx * self.link_bias)
        np.add.at(self.vy, t, -dy * self.link_bias)
        np.add.at(self.vx, s, dx * (1 - self.link_bias))
        np.add.at(self.vy, s, dy * (1 - self.link_bias))


    def _apply_many_body_force(self):
        n = len(self.nodes)
        if n < 2:
            return
        # (i, j) holds the offset from node i to node j
        dx = self.x[None, :] - self.x[:, None]
        dy = self.y[None, :] - self.y[:, None]
        off_diagonal = ~np.eye(n, dtype=bool)

        coincident = off_diagonal & (dx == 0) & (dy == 0)
        if coincident.any():
            dx[coincident] = self._jiggle(np.zeros(coincident.sum()))
            dy[coincident] = self._jiggle(np.zeros(coincident.sum()))

        l2 = dx * dx + dy * dy
        l2 = np.where(l2 < self.DISTANCE_MIN2, np.sqrt(self.DISTANCE_MIN2 * l2), l2)
        with np.errstate(divide="ignore", invalid="ignore"):
            factor = np.where(off_diagonal, self.charge * self.alpha / l2, 0.0)
        self.vx += (dx * factor).sum(axis=1)
        self.vy += (dy * factor).sum(axis=1)


    def _apply_center_force(self):
        cx, cy = self.center
        shift_x = self.x.mean() - cx
        shift_y = self.y.mean() - cy
        self.x -= shift_x
        self.y -= shift_y


    def _apply_collision_force(self):
        n = len(self.nodes)
        if n < 2:
            return
        px = self.x + self.vx
        py = self.y + self.vy
        dx = px[:, None] - px[None, :]
        dy = py[:, None] - py[None, :]
        reach = self.radii[:, None] + self.radii[None, :]
        l2 = dx * dx + dy * dy

        overlapping = np.triu(l2 < reach * reach, k=1)
        if not overlapping.any():
            return

        i, j = np.nonzero(overlapping)
        ox = self._jiggle(dx[i, j])
        oy = self._jiggle(dy[i, j])
        distance = np.sqrt(ox * ox + oy * oy)
        k = (reach[i, j] - distance) / distance * self.COLLIDE_STRENGTH
        ox *= k
        oy *= k

        # Overlap is shared by squared radius: the smaller node moves more
        ri2 = self.radii[i] ** 2
        rj2 = self.radii[j] ** 2
        share = rj2 / (ri2 + rj2)
        np.add.at(self.vx, i, ox * share)
        np.add.at(self.vy, i, oy * share)
        np.add.at(self.vx, j, -ox * (1 - share))
        np.add.at(self.vy, j, -oy * (1 - share))


    # ----------------------
    # Output
    # ----------------------

    def positions(self) -> dict:
        return {node["id"]: (float(self.x[i]), float(self.y[i])) for i, node in enumerate(self.nodes)}


    def sync_nodes(self):
        """Writes the current arena state back into the node dicts"""
        for i, node in enumerate(self.nodes):
            node["x"] = float(self.x[i])
            node["y"] = float(self.y[i])
            node["vx"] = float(self.vx[i])
            node["vy"] = float(self.vy[i])
            node["fx"] = float(self.fx[i]) if np.isfinite(self.fx[i]) else None
            node["fy"] = float(self.fy[i]) if np.isfinite(self.fy[i]) else None
