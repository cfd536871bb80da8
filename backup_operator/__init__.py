"""Operator reconciling CassandraBackup and CassandraRestore resources against Icarus."""

__version__ = "0.1.0"
