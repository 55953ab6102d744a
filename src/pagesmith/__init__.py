"""pagesmith: budget-bounded agent orchestration for wiki page improvement."""

__version__ = "0.1.0"
