"""Simulation Queue Module - Process-wide serialization of simulation runs"""

from pdsim_core.simulation_queue.simulation_queue import SimulationQueue, get_simulation_queue

__all__ = ['SimulationQueue', 'get_simulation_queue']
