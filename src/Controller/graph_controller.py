import logging
import numpy as np
from app_config import (DEFAULT_WIDTH, DEFAULT_HEIGHT, DEFAULT_VISUAL_SETTINGS, VISUAL_SETTING_RANGES,
                        default_filters)
from TradeFetching.fetch_errors import FetchError, FetchCancelled, ValidationError
from TradeFetching.trade_fetcher import TradeFetcher
from TradeGraph.trade_aggregator import TradeAggregator
from LayoutSimulation.force_simulation import ForceSimulation
from LayoutSimulation.simulation_driver import SimulationDriver, has_running_loop
from Visualization.graph_view import GraphView


IDLE = "idle"
LOADING = "loading"
ERROR = "error"
EMPTY = "empty"
READY = "ready"

FILTER_KEYS = {"currency", "instrument_type", "instrument_name", "from_timestamp", "to_timestamp",
               "page_size", "page", "tx_status"}


def validate_visual_settings(changes: dict):
    for key, value in changes.items():
        if key in VISUAL_SETTING_RANGES:
            low, high = VISUAL_SETTING_RANGES[key]
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(f"{key} must be an integer")
            if not low <= value <= high:
                raise ValidationError(f"{key} must be between {low} and {high}")
        elif key in ("show_labels", "show_tooltips"):
            if not isinstance(value, bool):
                raise ValidationError(f"{key} must be a boolean")
        else:
            raise ValidationError(f"Unknown visual setting: {key}")


def empty_stats() -> dict:
    return {"node_count": 0, "edge_count": 0, "total_volume": 0.0, "total_notional_volume": 0.0}


class GraphController:
    """
    Owns the filter and visual-settings state and wires fetch -> aggregate -> layout -> view.

    Every refresh takes a new generation number. A fetch that completes
    after a newer refresh has started belongs to an old generation and
    its result is dropped.
    """

    def __init__(self, fetcher: TradeFetcher = None, aggregator: TradeAggregator = None,
                 driver: SimulationDriver = None, filters: dict = None, visual_settings: dict = None,
                 width: float = DEFAULT_WIDTH, height: float = DEFAULT_HEIGHT, rng: np.random.Generator = None):
        self.rng = rng or np.random.default_rng()
        self.fetcher = fetcher or TradeFetcher()
        self.aggregator = aggregator or TradeAggregator(self.rng)
        self.driver = driver or SimulationDriver()

        self.filters = default_filters()
        if filters:
            self._check_filter_keys(filters)
            self.filters.update(filters)

        self.visual_settings = dict(DEFAULT_VISUAL_SETTINGS)
        if visual_settings:
            validate_visual_settings(visual_settings)
            self.visual_settings.update(visual_settings)

        self.width = width
        self.height = height
        self.view = GraphView(self.driver, self.visual_settings, width, height)

        self.status = IDLE
        self.error = None
        self.progress = None
        self.pagination = None
        self.graph = {"nodes": [], "links": []}
        self.stats = empty_stats()
        self.simulation = None
        self.generation = 0
        self.logger = logging.getLogger("graph_controller")


    @staticmethod
    def _check_filter_keys(changes: dict):
        unknown = set(changes) - FILTER_KEYS
        if unknown:
            raise ValidationError(f"Unknown filters: {', '.join(sorted(unknown))}")


    async def on_filter_change(self, **changes) -> str:
        self._check_filter_keys(changes)
        self.filters.update(changes)
        return await self.refresh()


    async def refresh(self) -> str:
        """Fetches the current filters and rebuilds the graph from scratch"""
        self.generation += 1
        generation = self.generation

        self.driver.stop()
        self.status = LOADING
        self.error = None
        self.progress = None

        def on_progress(progress):
            if generation == self.generation and self.status == LOADING:
                self.progress = progress

        def is_cancelled():
            return generation != self.generation

        try:
            data = await self.fetcher.fetch_all(dict(self.filters), on_progress, is_cancelled)
        except FetchCancelled:
            return self.status
        except FetchError as e:
            if is_cancelled():
                self.logger.info(f"Ignoring error from superseded fetch #{generation}: {e}")
                return self.status
            self.logger.error(f"❌ Failed to load trade history: {e}")
            self.status = ERROR
            self.error = str(e)
            self.progress = None
            return self.status

        if is_cancelled():
            self.logger.info(f"Discarding stale result of fetch #{generation}")
            return self.status

        self.progress = None
        self.pagination = data["pagination"]
        trades = data["trades"]

        if not trades:
            self.logger.info("No trades for the selected filters")
            self.graph = {"nodes": [], "links": []}
            self.stats = empty_stats()
            self.simulation = None
            self.view.set_graph([], [])
            self.status = EMPTY
            return self.status

        self._rebuild(trades)
        self.status = READY
        return self.status


    async def retry(self) -> str:
        return await self.refresh()


    def _rebuild(self, trades: list[dict]):
        graph = self.aggregator.aggregate(trades, self.width, self.height)
        self.graph = {"nodes": graph["nodes"], "links": graph["links"]}
        self.stats = graph["stats"]

        self.simulation = ForceSimulation(graph["nodes"], graph["links"], self.width, self.height,
                                          force_strength=self.visual_settings["force_strength"],
                                          node_size_scale=self.visual_settings["node_size_scale"],
                                          rng=self.rng)
        self.driver.load(self.simulation)
        self.view.set_graph(graph["nodes"], graph["links"])
        if has_running_loop():
            self.driver.start()


    def on_visual_settings_change(self, **changes):
        validate_visual_settings(changes)
        self.visual_settings.update(changes)
        self.view.set_visual_settings(changes)

        if self.simulation is not None:
            self.simulation.configure(force_strength=self.visual_settings["force_strength"],
                                      node_size_scale=self.visual_settings["node_size_scale"])
            self.driver.reheat(1.0)


    def resize(self, width: float, height: float):
        self.width = width
        self.height = height
        self.view.resize(width, height)
        if self.simulation is not None:
            self.simulation.configure(width=width, height=height)
            self.driver.reheat(1.0)


    def close(self):
        """Supersedes any in-flight fetch and stops the simulation"""
        self.generation += 1
        self.driver.close()
