"""Persistence adapter for documents, derived records and audit rows."""

from health_recon.store.models import OrganizationNotFound, StoreError
from health_recon.store.repository import DocumentStore

__all__ = ["DocumentStore", "OrganizationNotFound", "StoreError"]
