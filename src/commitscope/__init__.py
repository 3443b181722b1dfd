"""commitscope - commit history analytics for git repositories."""

__version__ = "0.1.0"
