"""Core agent client, resilience and orchestration for pagesmith."""
