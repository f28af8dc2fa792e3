"""Schema Module - Data models for the simulator"""

from pdsim_core.schema.call_spec import CallSpec, SimulationRequest
from pdsim_core.schema.simulation_context import SimulationContext

__all__ = ['CallSpec', 'SimulationRequest', 'SimulationContext']
