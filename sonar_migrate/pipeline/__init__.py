"""Migration pipeline: step runner, result tree and the per-phase drivers."""
