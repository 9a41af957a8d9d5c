import asyncio
import logging
from collections import deque
from typing import Callable
from LayoutSimulation.force_simulation import ForceSimulation, SETTLED


def has_running_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


class SimulationDriver:
    """
    Schedules ticks of one ForceSimulation on the event loop.

    Only one simulation is driven at a time: loading a new one stops the
    previous run first. Drag events from the interaction layer arrive as
    messages and are applied at the start of the next tick, so the
    simulation's arrays are only touched from inside a tick.
    """

    def __init__(self, tick_interval: float = 1 / 60):
        self.tick_interval = tick_interval
        self.simulation = None
        self._task = None
        self._messages = deque()
        self._listeners = []
        self.logger = logging.getLogger("simulation_driver")


    def on_tick(self, callback: Callable[[ForceSimulation], None]):
        self._listeners.append(callback)


    def load(self, simulation: ForceSimulation):
        """Replaces the driven simulation, stopping any run in progress"""
        self.stop()
        self._messages.clear()
        self.simulation = simulation
        self.logger.info(f"Loaded simulation with {len(simulation.nodes)} nodes and {len(simulation.source)} links")


    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()


    def start(self):
        """Schedules ticks until the simulation settles; needs a running event loop"""
        if self.simulation is None or self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        self._task.add_done_callback(self._log_failure)


    def _log_failure(self, task: asyncio.Task):
        if not task.cancelled() and task.exception() is not None:
            self.logger.error(f"❌ Simulation ticks stopped by {task.exception()!r}")


    def stop(self):
        if self.running:
            self._task.cancel()
            self.logger.info("Simulation stopped")
        self._task = None


    def close(self):
        """Teardown: stop ticking and drop all listeners"""
        self.stop()
        self._listeners.clear()
        self._messages.clear()
        self.simulation = None


    def post(self, message: dict):
        """Queues a drag message and wakes the simulation if it had settled"""
        if self.simulation is None:
            self.logger.warning(f"No simulation loaded, dropping {message.get('type')} message")
            return
        self._messages.append(message)
        if has_running_loop():
            self.start()


    def reheat(self, alpha: float = 1.0):
        if self.simulation is None:
            return
        self.simulation.reheat(alpha)
        if has_running_loop():
            self.start()


    def step(self) -> str:
        """Applies pending messages, runs one tick and notifies listeners"""
        while self._messages:
            message = self._messages.popleft()
            try:
                self.simulation.handle_message(message)
            except (KeyError, ValueError) as e:
                self.logger.error(f"❌ Dropping malformed simulation message {message}: {e!r}")
        state = self.simulation.tick()
        for listener in self._listeners:
            listener(self.simulation)
        return state


    def run_until_settled(self, max_ticks: int = 1000) -> int:
        """Headless layout: ticks synchronously without scheduling"""
        ticks = 0
        while ticks < max_ticks:
            ticks += 1
            if self.step() == SETTLED and not self._messages:
                break
        return ticks


    async def _run(self):
        while True:
            state = self.step()
            if state == SETTLED and not self._messages:
                self.logger.info(f"Simulation settled after {self.simulation.tick_count} ticks")
                return
            await asyncio.sleep(self.tick_interval)
