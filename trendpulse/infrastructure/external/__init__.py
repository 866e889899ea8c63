"""External systems - venue APIs."""
