"""posterkit: compose personalised posters from zone templates."""

__version__ = "0.1.0"
