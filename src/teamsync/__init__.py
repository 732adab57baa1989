"""TeamSync - team-scoped shared document synchronization."""

__version__ = "0.1.0"
