"""Tenant-scoped QR tag, scan, prospect and commission service."""
