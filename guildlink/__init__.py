"""Guild configuration stores and signed user/role linking claims for chat communities."""

__version__ = "0.1.0"