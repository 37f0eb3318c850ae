"""HTTP API for PitchEdge."""
