"""LoreForge: staged, budget-aware generation of game content."""

__version__ = "0.1.0"
