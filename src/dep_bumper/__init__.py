"""dep-bumper: find and apply newer versions for package.json dependencies."""

__version__ = "1.0.0"
