"""Smart Notebook: AI annotations for handwritten math work."""

__version__ = "1.0.0"
