"""Record source implementations."""

from maintask_finder.backends.postgres import PostgresSource

__all__ = ["PostgresSource"]
