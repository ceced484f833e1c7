"""
coprede - COP Rede panel.

Classifies network-operations chat messages (incident summaries, single
alerts, HUB shift allocations), extracts structured records and stores
them in SQLite for the dashboard.
"""

__version__ = "1.0.0"
