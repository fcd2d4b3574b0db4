"""
This module implements the agent-based simulation. Every day, each agent in the population (in ascending id order)
goes through:

1. Progression -- infected agents count one more day of infection, and recover on the day that count reaches the
   recovery threshold.
2. Contacts -- a fixed number of agent ids is sampled uniformly, with replacement, from the whole population. The agent
   itself may be sampled.
3. Infection -- while the agent is susceptible, each infected contact gets a chance to infect it.

Updates are sequential: a change made to an agent is visible to every agent processed after it on the same day. This
changes the outcome of a run when compared to updating every agent from a snapshot of the previous day.

The main entrypoint is :meth:`basicSimulation`, which creates the population, runs it for the configured number of days
and outputs a pandas DataFrame with the number of agents in each status per day.
"""
import logging
from typing import Any, Iterable, List, Mapping, NamedTuple

import numpy as np  # type: ignore
import pandas as pd  # type: ignore

from simple_agent_sim import loaders
from simple_agent_sim.common import Lazy
from simple_agent_sim.population import Agent, Population, Status, createPopulation

logger = logging.getLogger(__name__)

LOG_COLUMNS = ["day", "susceptible_count", "infected_count", "recovered_count"]
AGENT_COLUMNS = [
    "id", "status", "immune_power", "contagion_power", "days_infected", "infection_day", "recovery_day",
]

# Infection rolls are drawn uniformly from 1 to ROLL_MAX, both included
ROLL_MAX = 100


class SimulationParameters(NamedTuple):
    """
    Everything the engine needs to run. Use :meth:`createSimulationParameters` to build a validated instance.
    """
    population_size: int
    days: int
    contacts_per_agent_per_day: int
    initial_infected_fraction: float
    recovery_threshold_days: int


class DayRecord(NamedTuple):
    """Number of agents in each status at the end of a day"""
    day: int
    susceptible_count: int
    infected_count: int
    recovered_count: int


class SimulationResult(NamedTuple):
    """
    The time series log of a run and the population as it was at the end of the run
    """
    output: pd.DataFrame
    population: Population


def createSimulationParameters(config: Mapping[str, Any]) -> SimulationParameters:
    """Create the simulation parameters, failing if any of them is invalid.

    :param config: mapping with population_size, days, contacts_per_agent_per_day, initial_infected_fraction and
                   recovery_threshold_days
    :return: The validated parameters
    """
    return SimulationParameters(**loaders.readSimulationParameters(config))


def basicSimulation(parameters: SimulationParameters, generator: np.random.Generator) -> SimulationResult:
    """Run the simulation of a disease spreading through a population of agents.

    The population is created by this function and is only handed over to the caller once every day has been run.
    Invalid parameters raise ValueError before anything is created.

    :param parameters: The (validated) simulation parameters
    :param generator: Seeded random number generator. Every random draw of the run comes from it, in order
    :return: The time series with one row per day, and the final population
    """
    # Parameters may be built directly, without createSimulationParameters
    loaders.readSimulationParameters(parameters._asdict())

    population = createPopulation(parameters.population_size, parameters.initial_infected_fraction, generator)

    history: List[DayRecord] = []
    current = countStatuses(population, 0)
    for day in range(1, parameters.days + 1):
        # Without infected agents nobody can change status, so skip the tick. The log stays the same.
        if current.infected_count > 0:
            doTick(population, parameters, generator, day)
        current = countStatuses(population, day)
        if current.infected_count == 0 and history and history[-1].infected_count > 0:
            logger.debug("No infected agents left on day %s", day)
        logger.debug("Day (%s/%s). Status: %s", day, parameters.days, Lazy(lambda: current._asdict()))
        history.append(current)

    logger.info("Simulated %s days of %s agents. Final status: %s", parameters.days, len(population), current._asdict())
    return SimulationResult(output=logToPandas(history), population=population)


def doTick(population: Population, parameters: SimulationParameters, generator: np.random.Generator, day: int):
    """Run a single day, updating the population in place.

    :param population: The population, modified by this function
    :param parameters: The simulation parameters
    :param generator: Random number generator used for the model
    :param day: The day being run, starting from 1
    """
    for agent in population:
        doProgression(agent, parameters.recovery_threshold_days, day)
        contacts = sampleContacts(population, parameters.contacts_per_agent_per_day, generator)
        doInfection(agent, contacts, population, generator, day)


def doProgression(agent: Agent, recovery_threshold_days: int, day: int):
    """Count one more day for an infected agent, recovering it when it reaches the threshold.

    The check is for equality with the threshold and happens after the increment, so an agent infected on day ``d``
    recovers on day ``d + recovery_threshold_days``.

    :param agent: The agent, modified in place
    :param recovery_threshold_days: Number of days an agent stays infected
    :param day: The current day
    """
    if agent.status != Status.INFECTED:
        return
    agent.days_infected += 1
    if agent.days_infected == recovery_threshold_days:
        agent.recover(day)


def sampleContacts(population: Population, contacts: int, generator: np.random.Generator) -> np.ndarray:
    """Sample the ids of the agents met in a day, uniformly and with replacement.

    :param population: The whole population, any agent can be a contact
    :param contacts: How many ids to sample
    :param generator: Random number generator used for the model
    :return: An array of agent ids, possibly with repetitions
    """
    return generator.integers(1, len(population), size=contacts, endpoint=True)


def doInfection(
        agent: Agent,
        contacts: Iterable[int],
        population: Population,
        generator: np.random.Generator,
        day: int,
) -> bool:
    """Give each infected contact a chance of infecting a susceptible agent.

    A roll is drawn from 1 to 100 only when the agent is still susceptible and the contact is infected. The infection
    happens if the roll is strictly below the mean of the agent's immune power and the contact's contagion power. Once
    infected, the remaining contacts of the agent are skipped. The contacts are never modified.

    :param agent: The agent that may get infected
    :param contacts: Ids of the agents it met today
    :param population: The population, used to look up the contacts
    :param generator: Random number generator used for the model
    :param day: The current day, recorded as the infection day
    :return: True if the agent got infected by this call
    """
    for contact_id in contacts:
        if agent.status != Status.SUSCEPTIBLE:
            break
        contact = population[int(contact_id)]
        if contact.status != Status.INFECTED:
            continue
        roll = generator.integers(1, ROLL_MAX, endpoint=True)
        if roll < (agent.immune_power + contact.contagion_power) / 2:
            agent.infect(day)
            return True
    return False


def countStatuses(population: Population, day: int) -> DayRecord:
    """Count how many agents are in each status.

    :param population: The population
    :param day: day that will be inserted in the record
    :return: The record for that day
    """
    counts = population.counts()
    record = DayRecord(
        day=day,
        susceptible_count=counts[Status.SUSCEPTIBLE],
        infected_count=counts[Status.INFECTED],
        recovered_count=counts[Status.RECOVERED],
    )
    assert record.susceptible_count + record.infected_count + record.recovered_count == len(population), \
        f"counts do not add up to the population size on day {day}"
    return record


def logToPandas(records: List[DayRecord]) -> pd.DataFrame:
    """
    Converts the day records into a pandas DataFrame

    >>> logToPandas([DayRecord(day=1, susceptible_count=9, infected_count=1, recovered_count=0)])  # doctest: +NORMALIZE_WHITESPACE
       day  susceptible_count  infected_count  recovered_count
    0    1                  9               1                0

    :param records: one record per day
    :return: a pandas dataframe with one row per record
    """
    return pd.DataFrame([list(record) for record in records], columns=LOG_COLUMNS, dtype="int64")


def populationToPandas(population: Population) -> pd.DataFrame:
    """
    Snapshot of every agent in the population, one row per agent. Changes to the DataFrame do not affect the agents.

    :param population: The population
    :return: a pandas dataframe with the columns in AGENT_COLUMNS
    """
    rows = []
    for agent in population:
        rows.append([
            agent.id,
            agent.status.value,
            agent.immune_power,
            agent.contagion_power,
            agent.days_infected,
            agent.infection_day,
            agent.recovery_day,
        ])
    return pd.DataFrame(rows, columns=AGENT_COLUMNS).astype({"infection_day": "Int64", "recovery_day": "Int64"})
