"""
Incidents app.

Holds the Incident lifecycle and status propagation engine:
- Incident rows are a materialized view over the append-only IncidentUpdate log
- Every engine operation writes Incident + IncidentUpdate + Component status
  changes as one atomic unit
- Resolving an incident cascades all affected components back to operational
"""
