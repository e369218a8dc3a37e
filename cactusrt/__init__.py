"""Real-time style thread building blocks, lock-free style helpers and trace recording."""

__version__ = "0.1.0"