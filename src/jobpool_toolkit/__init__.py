"""JobPool Toolkit: run shell command lines on a bounded worker pool."""

__version__ = '0.1.0'
