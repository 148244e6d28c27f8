"""Client pipeline backend for a disability-services brokerage.

This package provides:
- Stage graphs and transition validation for client pipelines
- Client records with an append-only timeline
- Single and bulk stage moves with best-effort automated actions
- Organization, user and invite management with role-derived permissions
- Dashboard aggregate counts
"""
