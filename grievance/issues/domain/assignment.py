"""
Assignment Policy
=================

Pure eligibility and ranking rules for routing an issue to an agent.

An agent is eligible for an issue when it is dashboard-capable, available,
its priority ceiling covers the issue priority and it is under its capacity
cap. Eligible agents are ranked by lowest current load, ties broken by
earliest registration and then agent id, so repeated retries settle on the
same agent instead of oscillating.
"""

from typing import Iterable, List, Optional

from grievance.access.domain import PermissionModel, Principal
from grievance.config import Priority
from grievance.issues.domain.entities import AgentWorkloadSnapshot


class AssignmentPolicy:
    """Stateless ranking over workload snapshots."""

    def __init__(self, permission_model: PermissionModel):
        self._permissions = permission_model

    @staticmethod
    def principal_for(agent: AgentWorkloadSnapshot) -> Principal:
        return Principal(id=agent.agent_id, role=agent.role, email=agent.email)

    def is_dashboard_capable(self, agent: AgentWorkloadSnapshot) -> bool:
        return self._permissions.is_dashboard_capable(self.principal_for(agent))

    def ineligibility_reason(
        self,
        agent: AgentWorkloadSnapshot,
        priority: Priority,
        check_capacity: bool = True
    ) -> Optional[str]:
        """Why ``agent`` cannot take an issue of ``priority``, or None if it can."""
        if not self.is_dashboard_capable(agent):
            return "agent role is not dashboard-capable"
        if not agent.is_available:
            return "agent is not available"
        if not agent.covers(priority):
            return f"agent priority ceiling {agent.priority_ceiling.value} does not cover {priority.value}"
        if check_capacity and not agent.has_capacity:
            return "agent is at capacity"
        return None

    def is_eligible(self, agent: AgentWorkloadSnapshot, priority: Priority) -> bool:
        return self.ineligibility_reason(agent, priority) is None

    @staticmethod
    def sort_key(agent: AgentWorkloadSnapshot):
        return (agent.current_load, agent.registered_at, agent.agent_id)

    def rank(
        self,
        agents: Iterable[AgentWorkloadSnapshot],
        priority: Priority,
        exclude: Iterable[str] = ()
    ) -> List[AgentWorkloadSnapshot]:
        """Eligible agents, best candidate first."""
        excluded = set(exclude)
        eligible = [
            agent for agent in agents
            if agent.agent_id not in excluded and self.is_eligible(agent, priority)
        ]
        return sorted(eligible, key=self.sort_key)
