"""Candidate generation: prompts, response parsing and the generation client."""
