import logging
from matplotlib.collections import LineCollection, PatchCollection
from matplotlib.figure import Figure
from matplotlib.patches import Circle, Patch
from app_config import DEFAULT_WIDTH, DEFAULT_HEIGHT, DEFAULT_VISUAL_SETTINGS
from Helper.helperfunctions import shorten_address
from TradeGraph.node_style import (TYPE_COLORS, is_small_viewport, node_radius, node_rgb, hsl_to_rgb, edge_width,
                                   label_style, tooltip_content, detail_panel_content)


BACKGROUND_COLOR = "#000000"
EDGE_COLOR = (*hsl_to_rgb(220, 100, 40), 0.5)
NODE_STROKE = "#E5E7EB"
SELECTED_STROKE = "#FFFFFF"


class GraphView:
    """
    Interaction state and rendering for the wallet graph.

    Positions are copied from the simulation inside its tick callback;
    the view never writes into the simulation directly. Dragging posts
    messages to the driver instead. Hover tooltips are suppressed while
    a node is selected.
    """

    MIN_SCALE = 0.1
    MAX_SCALE = 4.0
    ZOOM_STEP = 1.3

    def __init__(self, driver, visual_settings: dict = None, width: float = DEFAULT_WIDTH,
                 height: float = DEFAULT_HEIGHT):
        self.driver = driver
        self.visual_settings = {**DEFAULT_VISUAL_SETTINGS, **(visual_settings or {})}
        self.width = width
        self.height = height
        self.transform = {"k": 1.0, "x": 0.0, "y": 0.0}

        self.nodes = []
        self.links = []
        self.node_index = {}
        self.positions = {}
        self.frame_count = 0

        self.selected_id = None
        self.hovered_id = None
        self.tooltip = None
        self.dragging_id = None
        self.logger = logging.getLogger("graph_view")

        driver.on_tick(self._on_tick)


    def set_graph(self, nodes: list[dict], links: list[dict]):
        self.nodes = nodes
        self.links = links
        self.node_index = {node["id"]: node for node in nodes}
        self.positions = {node["id"]: (node.get("x", 0.0), node.get("y", 0.0)) for node in nodes}
        self.selected_id = None
        self.hovered_id = None
        self.tooltip = None
        self.dragging_id = None


    def set_visual_settings(self, visual_settings: dict):
        self.visual_settings.update(visual_settings)
        if not self.visual_settings["show_tooltips"]:
            self.tooltip = None


    def resize(self, width: float, height: float):
        self.width = width
        self.height = height


    def _on_tick(self, simulation):
        self.positions = simulation.positions()
        self.frame_count += 1


    # ----------------------
    # Pan & zoom
    # ----------------------

    def zoom_by(self, factor: float, cx: float = None, cy: float = None):
        """Scales around a screen point (the viewport center by default)"""
        if cx is None:
            cx = self.width / 2
        if cy is None:
            cy = self.height / 2

        k = self.transform["k"]
        new_k = min(self.MAX_SCALE, max(self.MIN_SCALE, k * factor))
        gx, gy = self.to_graph(cx, cy)
        self.transform = {"k": new_k, "x": cx - gx * new_k, "y": cy - gy * new_k}


    def zoom_in(self):
        self.zoom_by(self.ZOOM_STEP)


    def zoom_out(self):
        self.zoom_by(1 / self.ZOOM_STEP)


    def reset_zoom(self):
        self.transform = {"k": 1.0, "x": 0.0, "y": 0.0}


    def pan(self, dx: float, dy: float):
        self.transform["x"] += dx
        self.transform["y"] += dy


    def to_screen(self, x: float, y: float) -> tuple:
        t = self.transform
        return (x * t["k"] + t["x"], y * t["k"] + t["y"])


    def to_graph(self, px: float, py: float) -> tuple:
        t = self.transform
        return ((px - t["x"]) / t["k"], (py - t["y"]) / t["k"])


    # ----------------------
    # Hit testing
    # ----------------------

    @property
    def small_viewport(self) -> bool:
        return is_small_viewport(self.width)


    def radius(self, node: dict) -> float:
        return node_radius(node["normalized_size"], self.visual_settings["node_size_scale"], self.small_viewport)


    def node_at(self, px: float, py: float):
        """Id of the topmost node under a screen point, or None"""
        gx, gy = self.to_graph(px, py)
        for node in reversed(self.nodes):
            x, y = self.positions[node["id"]]
            r = self.radius(node)
            if (gx - x) ** 2 + (gy - y) ** 2 <= r * r:
                return node["id"]
        return None


    # ----------------------
    # Hover & selection
    # ----------------------

    def hover(self, node_id: str):
        if self.selected_id or not self.visual_settings["show_tooltips"]:
            return None
        if node_id not in self.node_index:
            self.logger.warning(f"Ignoring hover on unknown node {node_id}")
            return None
        self.hovered_id = node_id
        self.tooltip = tooltip_content(self.node_index[node_id])
        return self.tooltip


    def leave(self):
        if self.selected_id or not self.visual_settings["show_tooltips"]:
            return
        self.hovered_id = None
        self.tooltip = None


    def select(self, node_id: str) -> dict:
        if node_id not in self.node_index:
            self.logger.warning(f"Ignoring selection of unknown node {node_id}")
            return None
        if self.selected_id != node_id:
            self.selected_id = node_id
            self.hovered_id = None
            self.tooltip = None
        return self.detail_panel


    def clear_selection(self):
        self.selected_id = None


    @property
    def detail_panel(self):
        if self.selected_id is None:
            return None
        return detail_panel_content(self.node_index[self.selected_id])


    # ----------------------
    # Dragging
    # ----------------------

    def drag_start(self, node_id: str):
        self.dragging_id = node_id
        self.driver.post({"type": "drag_start", "node_id": node_id})


    def drag(self, px: float, py: float):
        if self.dragging_id is None:
            return
        x, y = self.to_graph(px, py)
        self.driver.post({"type": "drag", "node_id": self.dragging_id, "x": x, "y": y})


    def drag_end(self):
        if self.dragging_id is None:
            return
        self.driver.post({"type": "drag_end", "node_id": self.dragging_id})
        self.dragging_id = None


    # ----------------------
    # Rendering
    # ----------------------

    def draw(self, figure: Figure = None) -> Figure:
        """Renders the current frame under the pan/zoom transform"""
        dpi = 100
        if figure is None:
            figure = Figure(figsize=(self.width / dpi, self.height / dpi), dpi=dpi)
        ax = figure.add_axes([0, 0, 1, 1])
        ax.set_facecolor(BACKGROUND_COLOR)
        ax.set_xlim(0, self.width)
        ax.set_ylim(self.height, 0)
        ax.set_axis_off()

        k = self.transform["k"]
        scale = self.visual_settings["edge_thickness_scale"]

        segments = []
        widths = []
        for link in self.links:
            if link["source"] not in self.positions or link["target"] not in self.positions:
                continue
            segments.append([self.to_screen(*self.positions[link["source"]]),
                             self.to_screen(*self.positions[link["target"]])])
            widths.append(edge_width(link["amount"], scale) * k)
        if segments:
            ax.add_collection(LineCollection(segments, linewidths=widths, colors=[EDGE_COLOR], capstyle="round"))

        circles = []
        faces = []
        strokes = []
        stroke_widths = []
        for node in self.nodes:
            sx, sy = self.to_screen(*self.positions[node["id"]])
            circles.append(Circle((sx, sy), self.radius(node) * k))
            faces.append(node_rgb(node["buy_count"], node["sell_count"]))
            selected = node["id"] == self.selected_id
            strokes.append(SELECTED_STROKE if selected else NODE_STROKE)
            stroke_widths.append(3 if selected else 1)
        if circles:
            ax.add_collection(PatchCollection(circles, facecolors=faces, edgecolors=strokes,
                                              linewidths=stroke_widths))

        if self.visual_settings["show_labels"]:
            for node in self.nodes:
                style = label_style(node["normalized_size"], self.visual_settings["node_size_scale"],
                                    self.small_viewport)
                x, y = self.positions[node["id"]]
                sx, sy = self.to_screen(x, y + style["dy"])
                ax.text(sx, sy, shorten_address(node["id"]), fontsize=style["font_size"],
                        ha="center", color=NODE_STROKE)

        handles = [Patch(facecolor=color, label=node_type.capitalize()) for node_type, color in TYPE_COLORS.items()]
        ax.legend(handles=handles, loc="upper left", fontsize=8, facecolor=BACKGROUND_COLOR,
                  labelcolor=NODE_STROKE, framealpha=0.6)

        return figure


    def save(self, path: str):
        figure = self.draw()
        figure.savefig(path, facecolor=BACKGROUND_COLOR)
        self.logger.info(f"Saved graph frame to {path}")
