"""Token heuristics shared by the AI stack."""
