"""
Simple agent sim is an agent-based model of a contagious disease spreading through a fixed population.

Every agent carries its own health status (susceptible, infected or recovered) and two fixed traits, its immune power
and its contagion power. The main model lives in `simulation`: :meth:`simulation.basicSimulation` advances a
`population.Population` one day at a time and outputs a pandas DataFrame with the number of agents in each status per
day. The `sampleUseOfModel` module is a command line runner that repeats a simulation over several trials and writes
the results to disk.
"""
