"""HTTP trigger surface for schedulers and on-demand calls."""

from health_recon.api.app import create_app

__all__ = ["create_app"]
