import math
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from simple_agent_sim import sampleUseOfModel as sm
from simple_agent_sim import simulation as sim
from simple_agent_sim.common import Issue


def _log(*rows):
    return sim.logToPandas([sim.DayRecord(*row) for row in rows])


def _agents(infection_days):
    return pd.DataFrame({"infection_day": pd.array(infection_days, dtype="Int64")})


def test_aggregateResults():
    results = [
        sm.Result(output=_log((1, 9, 1, 0), (2, 8, 1, 1)), issues=[]),
        sm.Result(output=_log((1, 7, 3, 0), (2, 4, 4, 2)), issues=[]),
    ]

    aggregated = sm.aggregateResults(results).output

    assert list(aggregated.columns) == ["day", "state", "mean", "std"]
    assert len(aggregated) == 6
    indexed = aggregated.set_index(["day", "state"])
    assert indexed.loc[(1, "S"), "mean"] == pytest.approx(8.0)
    assert indexed.loc[(1, "I"), "mean"] == pytest.approx(2.0)
    assert indexed.loc[(2, "S"), "mean"] == pytest.approx(6.0)
    assert indexed.loc[(2, "R"), "mean"] == pytest.approx(1.5)
    assert indexed.loc[(1, "S"), "std"] == pytest.approx(math.sqrt(2.0))
    assert indexed.loc[(1, "R"), "std"] == pytest.approx(0.0)


def test_aggregateResults_single_run():
    aggregated = sm.aggregateResults([sm.Result(output=_log((1, 9, 1, 0)), issues=[])]).output

    assert aggregated.set_index(["day", "state"]).loc[(1, "I"), "mean"] == pytest.approx(1.0)
    assert aggregated["std"].isna().all()


def test_aggregateResults_merges_issues():
    issue1 = Issue(description="a", severity=1)
    issue2 = Issue(description="b", severity=5)
    results = [
        sm.Result(output=_log((1, 9, 1, 0)), issues=[issue1, issue2]),
        sm.Result(output=_log((1, 9, 1, 0)), issues=[issue1]),
    ]

    assert sm.aggregateResults(results).issues == [issue1, issue2]


def test_checkRun_no_issues(parameters):
    output = _log((1, 190, 10, 0), (30, 150, 20, 30))

    assert sm.checkRun(parameters, output, _agents([0, None, 3])) == []


def test_checkRun_no_initial_infections(parameters):
    issues = sm.checkRun(parameters, _log((1, 200, 0, 0), (30, 200, 0, 0)), _agents([None, None]))

    descriptions = [issue.description for issue in issues]
    assert "No agent was infected when the population was created" in descriptions


def test_checkRun_no_infections_is_not_an_early_end(parameters):
    issues = sm.checkRun(parameters, _log((1, 200, 0, 0), (30, 200, 0, 0)), _agents([None, None]))

    assert issues == [Issue(description="No agent was infected when the population was created", severity=5)]


def test_checkRun_no_contacts(parameters):
    issues = sm.checkRun(
        parameters._replace(contacts_per_agent_per_day=0),
        _log((1, 190, 10, 0)),
        _agents([0, None]),
    )

    assert issues == [Issue(description="Agents have no contacts, the disease cannot spread", severity=1)]


def test_checkRun_epidemic_over_early(parameters):
    output = _log((1, 190, 10, 0), (2, 190, 0, 10), (3, 190, 0, 10))

    issues = sm.checkRun(parameters, output, _agents([0, None]))

    assert issues == [Issue(description="No infected agents left from day 2 until the end of the run", severity=1)]


def test_checkRun_epidemic_over_on_last_day(parameters):
    output = _log((29, 190, 1, 9), (30, 190, 0, 10))

    assert sm.checkRun(parameters, output, _agents([0, None])) == []


def test_runSimulation_independent_trials():
    parameters = sim.SimulationParameters(
        population_size=500,
        days=20,
        contacts_per_agent_per_day=3,
        initial_infected_fraction=0.1,
        recovery_threshold_days=5,
    )
    issues = [Issue(description="before", severity=1)]

    r1, r2 = sm.runSimulation(parameters, trials=2, random_seed=123, issues=issues, max_workers=2)

    # It's very unlikely these numbers would match unless both runs produce the same numbers
    assert r1.output.recovered_count.sum() != r2.output.recovered_count.sum()
    assert r1.issues[0] == issues[0]
    assert r2.issues[0] == issues[0]
    assert issues == [Issue(description="before", severity=1)]
    assert len(r1.agents) == 500


def test_runSimulation_trials_match_spawned_seeds():
    parameters = sim.SimulationParameters(
        population_size=100,
        days=10,
        contacts_per_agent_per_day=2,
        initial_infected_fraction=0.1,
        recovery_threshold_days=3,
    )

    results = sm.runSimulation(parameters, trials=3, random_seed=7, issues=[], max_workers=2)

    seqs = np.random.SeedSequence(7).spawn(3)
    for result, seq in zip(results, seqs):
        expected = sim.basicSimulation(parameters, np.random.default_rng(seq)).output
        pd.testing.assert_frame_equal(result.output, expected)


def test_issuesToPandas():
    issues = [Issue(description="a", severity=1), Issue(description="b", severity=5)]

    df = sm.issuesToPandas(issues)

    assert list(df.columns) == ["description", "severity"]
    assert df.to_dict("records") == [{"description": "a", "severity": 1}, {"description": "b", "severity": 5}]


def test_issuesToPandas_empty():
    assert list(sm.issuesToPandas([]).columns) == ["description", "severity"]


def test_writeResult(tmp_path):
    result = sm.Result(output=_log((1, 9, 1, 0)), issues=[Issue(description="a", severity=1)], description="A run")

    sm.writeResult(result, tmp_path, "run-0")

    pd.testing.assert_frame_equal(pd.read_csv(tmp_path / "run-0.csv"), result.output)
    issues = pd.read_csv(tmp_path / "run-0-issues.csv")
    assert issues.to_dict("records") == [{"description": "a", "severity": 1}]


def test_build_args_defaults():
    args = sm.build_args([])

    assert args.config == Path("parameters.yaml")
    assert args.output == Path("output")
    assert args.logfile is None
    assert not args.quiet
    assert not args.debug
    assert args.workers == 0


def test_build_args():
    args = sm.build_args(["-c", "my.yaml", "-o", "out", "-l", "run.log", "--debug", "--workers", "3"])

    assert args.config == Path("my.yaml")
    assert args.output == Path("out")
    assert args.logfile == Path("run.log")
    assert args.debug
    assert args.workers == 3
