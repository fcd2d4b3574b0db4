"""This module contains functions to read and check the model configuration."""

import logging
import math
import numbers
from pathlib import Path
from typing import Any, Dict, Mapping, Union

import yaml

logger = logging.getLogger(__name__)

# Keys read by the engine, everything else in a config is either a runner option or ignored
SIMULATION_PARAMETERS = (
    "population_size",
    "days",
    "contacts_per_agent_per_day",
    "initial_infected_fraction",
    "recovery_threshold_days",
)
RUNNER_OPTIONS = ("trials", "random_seed")


def readConfigFile(path: Union[str, Path]) -> Dict[str, Any]:
    """Read a YAML file with the model configuration.

    :param path: Path to the YAML file
    :return: The configuration as a dictionary
    """
    with open(path, "r") as fp:
        config = yaml.safe_load(fp)

    if not isinstance(config, dict):
        raise ValueError(f"{path} must contain a mapping of parameter names to values")

    return config


def _readInt(config: Mapping[str, Any], name: str) -> int:
    if name not in config:
        raise ValueError(f"Missing parameter {name}")
    value = config[name]
    # bool is a subclass of int, but True agents makes no sense
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise ValueError(f"{name} must be an int")
    return int(value)


def _assertPositiveInt(value: int, name: str):
    if value <= 0:
        raise ValueError(f"{name} must be > 0")


def readSimulationParameters(config: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Validates the parameters needed by the simulation engine.

    Unknown keys are ignored with a warning. This includes the average infection probability some older configurations
    carry: the chance of an infection is fully determined by the traits of the agents involved.

    :param config: A mapping with (at least) the simulation parameters
    :return: A dictionary with only the validated simulation parameters
    """
    population_size = _readInt(config, "population_size")
    _assertPositiveInt(population_size, "population_size")

    days = _readInt(config, "days")
    _assertPositiveInt(days, "days")

    recovery_threshold_days = _readInt(config, "recovery_threshold_days")
    _assertPositiveInt(recovery_threshold_days, "recovery_threshold_days")

    contacts = _readInt(config, "contacts_per_agent_per_day")
    if contacts < 0:
        raise ValueError("contacts_per_agent_per_day must be >= 0")

    if "initial_infected_fraction" not in config:
        raise ValueError("Missing parameter initial_infected_fraction")
    fraction = config["initial_infected_fraction"]
    if isinstance(fraction, bool) or not isinstance(fraction, numbers.Real):
        raise ValueError("initial_infected_fraction must be a number")
    if math.isnan(fraction) or fraction < 0.0 or fraction > 1.0:
        raise ValueError("initial_infected_fraction must be between 0 and 1")

    unknown = set(config) - set(SIMULATION_PARAMETERS) - set(RUNNER_OPTIONS)
    if unknown:
        logger.warning("Ignoring unrecognised parameters: %s", sorted(unknown))

    return {
        "population_size": population_size,
        "days": days,
        "contacts_per_agent_per_day": contacts,
        "initial_infected_fraction": float(fraction),
        "recovery_threshold_days": recovery_threshold_days,
    }


def readRandomSeed(config: Mapping[str, Any]) -> int:
    """
    Reads the random seed from the configuration, defaults to 0

    :param config: the configuration mapping
    :return: a value of using the random seed as an int
    """
    if "random_seed" not in config:
        return 0

    seed = config["random_seed"]
    if isinstance(seed, str):
        try:
            seed = int(seed)
        except ValueError:
            raise ValueError("Seed must be an int") from None

    if isinstance(seed, bool) or not isinstance(seed, numbers.Integral):
        raise ValueError("Seed must be an int")
    seed = int(seed)

    if seed < 0:
        raise ValueError("Seed must be positive")

    return seed


def readTrials(config: Mapping[str, Any]) -> int:
    """
    Reads the number of trials from the configuration, defaults to 1

    :param config: the configuration mapping
    :return: the number of trials to run
    """
    if "trials" not in config:
        return 1

    trials = config["trials"]

    if isinstance(trials, bool) or not isinstance(trials, numbers.Integral):
        raise ValueError("trials must be an int")
    trials = int(trials)

    if trials < 1:
        raise ValueError("trials must be > 0")

    return trials
