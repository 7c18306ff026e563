"""
Components app.

Owns the monitored parts of the system (Components), their global status and
its append-only change history, and Groups whose status is always computed
from member Components rather than stored.
"""
