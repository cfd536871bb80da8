"""
Reconcilers for CassandraBackup and CassandraRestore.

Each pass is level-triggered: it re-derives what to do from the resource,
the linked cluster and the operations Icarus reports, every time.
"""
