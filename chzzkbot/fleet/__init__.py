"""
Tenant supervision and fleet discovery.
"""

from .supervisor import TenantSupervisor, SupervisorState
from .manager import FleetManager, StaticOwnerSource

__all__ = ['TenantSupervisor', 'SupervisorState', 'FleetManager', 'StaticOwnerSource']
