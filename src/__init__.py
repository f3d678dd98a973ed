"""backoffice — batch/cache core of the admin back-office."""

__version__ = "0.1.0"
