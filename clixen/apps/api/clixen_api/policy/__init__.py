"""Trial, quota and plan policy (pure functions, no I/O)."""
