"""
This is the main module used to run simulations of agents from a configuration file
"""
import argparse
from concurrent import futures
import logging
import logging.config
from pathlib import Path
import sys
import time
from typing import Optional, List, NamedTuple, Tuple

import numpy as np  # type: ignore
import pandas as pd  # type: ignore

from simple_agent_sim.common import Issue, IssueSeverity, log_issue
from simple_agent_sim.population import Status
from . import loaders
from . import simulation as sim

# Default logger, used if module not called as __main__
logger = logging.getLogger(__name__)

STATES = {
    "susceptible_count": Status.SUSCEPTIBLE.value,
    "infected_count": Status.INFECTED.value,
    "recovered_count": Status.RECOVERED.value,
}


def main(argv):
    """
    Main function to run the agent simulation
    """
    t0 = time.time()

    args = build_args(argv)
    setup_logger(args)
    logger.info("Parameters\n%s", "\n".join(f"\t{key}={value}" for key, value in args._get_kwargs()))  # pylint: disable=protected-access

    config = loaders.readConfigFile(args.config)
    parameters = sim.createSimulationParameters(config)
    trials = loaders.readTrials(config)
    random_seed = loaders.readRandomSeed(config)

    issues: List[Issue] = []
    results = runSimulation(parameters, trials, random_seed, issues=issues, max_workers=None if not args.workers else args.workers)
    aggregated = aggregateResults(results)

    logger.info("Writing output to %s", args.output)
    args.output.mkdir(parents=True, exist_ok=True)
    writeResult(aggregated, args.output, "outbreak-timeseries")
    for i, result in enumerate(results):
        writeResult(result, args.output, f"run-{i}")
        result.agents.to_csv(args.output / f"run-{i}-agents.csv", index=False)

    logger.info("Took %.2fs to run the simulation.", time.time() - t0)


class Result(NamedTuple):
    """
    This object contains the results of a simulation and a small description
    """
    output: pd.DataFrame
    issues: List[Issue]
    agents: Optional[pd.DataFrame] = None
    description: str = "A dataframe of the number of agents in each status over time"


def writeResult(result: "Result", directory: Path, name: str):
    """Write the output of a result to <name>.csv and its issues to <name>-issues.csv

    :param result: the result to write
    :param directory: directory where both files are created
    :param name: base name of the files
    """
    logger.info("Writing %s (%s issues): %s", name, len(result.issues), result.description)
    result.output.to_csv(directory / f"{name}.csv", index=False)
    issuesToPandas(result.issues).to_csv(directory / f"{name}-issues.csv", index=False)


def issuesToPandas(issues: List[Issue]) -> pd.DataFrame:
    """
    Converts a list of issues into a pandas DataFrame, with the columns description and severity

    :param issues: the issues
    :return: one row per issue
    """
    return pd.DataFrame([list(issue) for issue in issues], columns=list(Issue._fields))


def runSimulation(
        parameters: sim.SimulationParameters,
        trials: int,
        random_seed: int,
        issues: List[Issue],
        max_workers: Optional[int] = None,
) -> List[Result]:
    """Run the same simulation several times, each with its own random stream

    :param parameters: the simulation parameters, shared by all trials
    :param trials: number of times the simulation is run
    :param random_seed: seed to use when instantiating the SeedSequence object
    :param issues: issues found before running the model, they are copied into every result
    :param max_workers: maximum number of processes to spawn when running multiple simulations
    :return: Result runs for all trials of the simulation, in the same order as the spawned seeds
    """
    results = []
    with futures.ProcessPoolExecutor(max_workers=max_workers) as executor:
        delayed: List[futures.Future] = []
        for seq in np.random.SeedSequence(random_seed).spawn(trials):
            delayed.append(executor.submit(_runTrial, parameters, np.random.default_rng(seq)))

        for t, future in enumerate(delayed, start=1):
            logger.info("Running simulation (%s/%s)", t, trials)
            df, agents, new_issues = future.result()
            results.append(
                Result(output=df, issues=issues + new_issues, agents=agents, description="An individual model run")
            )

    return results


def _runTrial(
        parameters: sim.SimulationParameters,
        generator: np.random.Generator,
) -> Tuple[pd.DataFrame, pd.DataFrame, List[Issue]]:
    result = sim.basicSimulation(parameters, generator)
    agents = sim.populationToPandas(result.population)
    return result.output, agents, checkRun(parameters, result.output, agents)


def checkRun(parameters: sim.SimulationParameters, output: pd.DataFrame, agents: pd.DataFrame) -> List[Issue]:
    """Look for runs that are valid, but probably not what the user wanted

    :param parameters: the simulation parameters
    :param output: the time series produced by the run
    :param agents: snapshot of the population at the end of the run
    :return: a list of issues found
    """
    issues: List[Issue] = []
    if not (agents.infection_day == 0).any():
        log_issue(logger, "No agent was infected when the population was created", IssueSeverity.MEDIUM, issues)
    if parameters.contacts_per_agent_per_day == 0:
        log_issue(logger, "Agents have no contacts, the disease cannot spread", IssueSeverity.LOW, issues)
    # A run where nobody was ever infected did not end early, it never started
    ever_infected = agents.infection_day.notna().any()
    finished = output[output.infected_count == 0]
    if ever_infected and not finished.empty and finished.day.iloc[0] < parameters.days:
        log_issue(
            logger,
            f"No infected agents left from day {finished.day.iloc[0]} until the end of the run",
            IssueSeverity.LOW,
            issues,
        )
    return issues


def aggregateResults(results: List[Result]) -> Result:
    """Aggregate results from runs

    :param results: result runs from runSimulation
    :return: Mean and standard deviation of the number of agents in each status through time, for all trials
    """
    issues = {issue for result in results for issue in result.issues}
    combined = pd.concat([result.output for result in results], ignore_index=True)
    long = combined.melt(id_vars="day", var_name="state", value_name="total")
    long["state"] = long.state.map(STATES)
    agg = long.groupby(["day", "state"]).total.agg(["mean", "std"]).reset_index()
    return Result(output=agg, issues=sorted(issues), description="Mean and stddev for all the runs")


def setup_logger(args: Optional[argparse.Namespace] = None) -> None:
    """
    Configure package-level logger instance.

    :param args: argparse.Namespace
        args.logfile (pathlib.Path) is used to create a logfile if present
        args.quiet and args.debug control logging level to sys.stderr

    This function can be called without args, in which case it configures the
    package logger to write INFO and above to STDERR.
    """
    logconf = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s",
            },
        },
        "handlers": {
            "stderr": {
                "level": "INFO",
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "stream": "ext://sys.stderr",
            },
        },
        "loggers": {__package__: {"handlers": ["stderr"], "level": "DEBUG"}},
    }

    if args is not None and args.logfile is not None:
        logdir = args.logfile.parents[0]
        try:
            if not logdir == Path.cwd():
                logdir.mkdir(parents=True, exist_ok=True)
        except OSError:
            logger.error("Could not create %s for logging", logdir, exc_info=True)
            raise SystemExit(1)
        logconf["handlers"]["logfile"] = {  # type: ignore
            "class": "logging.FileHandler",
            "level": "INFO",
            "formatter": "standard",
            "filename": str(args.logfile),
            "encoding": "utf8",
        }
        logconf["loggers"][__package__]["handlers"].append("logfile")  # type: ignore

    if args is not None and args.quiet:
        logconf["handlers"]["stderr"]["level"] = "WARNING"  # type: ignore
    elif args is not None and args.debug:
        logconf["handlers"]["stderr"]["level"] = "DEBUG"  # type: ignore
        if "logfile" in logconf["handlers"]:  # type: ignore
            logconf["handlers"]["logfile"]["level"] = "DEBUG"  # type: ignore

    logging.config.dictConfig(logconf)


def build_args(argv):
    """Return parsed CLI arguments as argparse.Namespace.

    :param argv: CLI arguments
    :type argv: list
    """

    parser = argparse.ArgumentParser(
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        description="Uses the agent-based model to simulate a disease spreading through a population",
    )
    parser.add_argument(
        "-c",
        "--config",
        default="parameters.yaml",
        type=Path,
        help="YAML file with the simulation parameters",
    )
    parser.add_argument(
        "-o",
        "--output",
        default=Path("output"),
        type=Path,
        help="Directory where the time series are written",
    )
    parser.add_argument(
        "-l",
        "--logfile",
        dest="logfile",
        default=None,
        type=Path,
        help="Path for logging output",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        dest="quiet",
        action="store_true",
        help="Prints only warnings to stderr",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Provide debug output to STDERR"
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=0,
        help="Defaults to the number of CPUs in the machine",
    )

    return parser.parse_args(argv)


if __name__ == "__main__":
    # The logger name inherits from the package, if called as __main__
    logger = logging.getLogger(f"{__package__}.{__name__}")
    main(sys.argv[1:])
