"""Engine — planning, preconditions, fan-out and execution of target graphs."""
