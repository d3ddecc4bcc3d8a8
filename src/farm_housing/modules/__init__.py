"""
Modules package for the residency engine.

Modules are plug-ins attached to the coordinator's bus and store.
"""

from farm_housing.modules.base import EngineModule

__all__ = ["EngineModule"]
