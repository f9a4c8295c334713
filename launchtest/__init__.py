"""LaunchTest decision engine: statistical winner decisions for marketing launch tests."""

__version__ = "0.1.0"
