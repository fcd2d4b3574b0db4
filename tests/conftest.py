# pylint: disable=duplicate-code
from typing import List, Optional

import numpy as np
import pytest
import yaml

from simple_agent_sim.population import Agent, Population
from simple_agent_sim.simulation import SimulationParameters


class FakeGenerator:
    """
    Stands in for a numpy Generator in the engine. Contact samples are handed out in order, one list per call, and
    every infection roll returns the same value.
    """
    def __init__(self, contacts: Optional[List[List[int]]] = None, roll: int = 1):
        self.contacts = list(contacts or [])
        self.roll = roll
        self.rolls = 0

    def integers(self, low, high, size=None, endpoint=False):  # pylint: disable=unused-argument
        if size is None:
            self.rolls += 1
            return self.roll
        if size == 0:
            return np.array([], dtype=np.int64)
        return np.array(self.contacts.pop(0), dtype=np.int64)


def _buildPopulation(statuses, immune_power=50.0, contagion_power=50.0):
    agents = [
        Agent(agent_id=i + 1, status=status, immune_power=immune_power, contagion_power=contagion_power)
        for i, status in enumerate(statuses)
    ]
    return Population(agents)


@pytest.fixture
def build_population():
    yield _buildPopulation


@pytest.fixture
def fake_generator():
    yield FakeGenerator


@pytest.fixture
def parameters():
    yield SimulationParameters(
        population_size=200,
        days=30,
        contacts_per_agent_per_day=3,
        initial_infected_fraction=0.05,
        recovery_threshold_days=4,
    )


@pytest.fixture
def config():
    yield {
        "population_size": 300,
        "days": 20,
        "contacts_per_agent_per_day": 2,
        "initial_infected_fraction": 0.05,
        "recovery_threshold_days": 5,
        "trials": 2,
        "random_seed": 123,
    }


@pytest.fixture
def config_file(tmp_path, config):  # pylint: disable=redefined-outer-name
    path = tmp_path / "parameters.yaml"
    with open(path, "w") as fp:
        yaml.safe_dump(config, fp)
    yield path

