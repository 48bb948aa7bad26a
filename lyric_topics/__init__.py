"""Topic modelling and similarity clustering over song lyrics."""

__version__ = "0.1.0"
