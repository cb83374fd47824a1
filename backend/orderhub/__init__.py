"""Order lifecycle and inventory-reservation engine for a multi-currency marketplace."""

__version__ = "1.0.0"
