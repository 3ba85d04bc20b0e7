"""Application layer: build, contracts, reports, gate pipeline, commit and release checks."""
