"""Discord transport and the PR-link message handling built on it."""
