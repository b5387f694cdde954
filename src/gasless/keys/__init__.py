"""Owner and relayer keys, and UserOperation signing."""
