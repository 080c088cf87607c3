"""photoqueue - offline-durable upload queue for captured photos."""

__version__ = "0.1.0"
