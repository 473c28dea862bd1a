"""Use cases — the vertical slices the CLI calls (run, plan, toolchain)."""
