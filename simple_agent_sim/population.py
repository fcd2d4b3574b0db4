"""
The population is the state of the model: an ordered collection of agents, each with a health status, two fixed
traits and a counter of the days it has been infected.

The only legal status changes are Susceptible -> Infected and Infected -> Recovered. Recovered is absorbing.
"""
import logging
from enum import Enum
from typing import Dict, Iterator, List, Optional

import numpy as np  # type: ignore

from simple_agent_sim.common import Lazy

logger = logging.getLogger(__name__)

# Both traits are drawn uniformly from this range when the population is created
TRAIT_RANGE = (5.0, 85.0)


class Status(Enum):
    """Health status of an agent"""
    SUSCEPTIBLE = "S"
    INFECTED = "I"
    RECOVERED = "R"


class Agent:
    """
    A single individual.

    :param agent_id: index of the agent in its population, starting from 1
    :param status: initial status, either susceptible or infected
    :param immune_power: the lower the immune power the better the immune system. Note that this value is added to the
                         infection threshold of the agent, so higher values make it easier to catch the disease
    :param contagion_power: how easily this agent passes the disease on
    """

    def __init__(self, agent_id: int, status: Status, immune_power: float, contagion_power: float):
        if status == Status.RECOVERED:
            raise ValueError("Agents cannot start recovered")
        self.id = agent_id
        self.status = status
        self.immune_power = immune_power
        self.contagion_power = contagion_power
        self.days_infected = 0
        # Days in which the status changed, 0 is the creation of the population
        self.infection_day: Optional[int] = 0 if status == Status.INFECTED else None
        self.recovery_day: Optional[int] = None

    def infect(self, day: int):
        """Moves a susceptible agent into the infected status"""
        if self.status != Status.SUSCEPTIBLE:
            raise ValueError(f"Agent {self.id} is {self.status.name} and cannot be infected")
        self.status = Status.INFECTED
        self.infection_day = day

    def recover(self, day: int):
        """Moves an infected agent into the recovered status"""
        if self.status != Status.INFECTED:
            raise ValueError(f"Agent {self.id} is {self.status.name} and cannot recover")
        self.status = Status.RECOVERED
        self.recovery_day = day

    def __repr__(self):
        return (
            f"Agent(id={self.id}, status={self.status.name}, immune_power={self.immune_power:.2f}, "
            f"contagion_power={self.contagion_power:.2f}, days_infected={self.days_infected})"
        )


class Population:
    """
    Fixed size collection of agents, indexed by agent id (1..N). Iterating goes through the agents in ascending id.

    :param agents: The agents, the agent at position i must have id i + 1
    """

    def __init__(self, agents: List[Agent]):
        for position, agent in enumerate(agents):
            if agent.id != position + 1:
                raise ValueError(f"agent at position {position} has id {agent.id}")
        self._agents = agents

    def __getitem__(self, agent_id: int) -> Agent:
        if agent_id < 1 or agent_id > len(self._agents):
            raise IndexError(f"No agent with id {agent_id}")
        return self._agents[agent_id - 1]

    def __iter__(self) -> Iterator[Agent]:
        return iter(self._agents)

    def __len__(self) -> int:
        return len(self._agents)

    def counts(self) -> Dict[Status, int]:
        """Number of agents in each status. Every status is present, even when zero."""
        result = {status: 0 for status in Status}
        for agent in self._agents:
            result[agent.status] += 1
        return result


def createPopulation(size: int, initial_infected_fraction: float, generator: np.random.Generator) -> Population:
    """Creates a new population where each agent is infected with probability ``initial_infected_fraction``.

    Statuses, immune powers and contagion powers are all drawn independently, in this order, from ``generator``.

    :param size: Number of agents
    :param initial_infected_fraction: Probability of each agent starting infected
    :param generator: Seeded random number generator
    :return: The new population
    """
    if size <= 0:
        raise ValueError("Population size must be > 0")
    if not 0.0 <= initial_infected_fraction <= 1.0:
        raise ValueError("The initial infected fraction must be between 0 and 1")

    infected = generator.random(size) < initial_infected_fraction
    immune_powers = generator.uniform(*TRAIT_RANGE, size=size)
    contagion_powers = generator.uniform(*TRAIT_RANGE, size=size)

    agents = [
        Agent(
            agent_id=i + 1,
            status=Status.INFECTED if infected[i] else Status.SUSCEPTIBLE,
            immune_power=float(immune_powers[i]),
            contagion_power=float(contagion_powers[i]),
        )
        for i in range(size)
    ]
    population = Population(agents)
    logger.debug("Created population. Status: %s", Lazy(lambda: {s.name: c for s, c in population.counts().items()}))
    return population
