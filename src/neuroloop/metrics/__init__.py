"""Pure metric calculators: recovery, scores, capacity, reasoning quality, network score."""
