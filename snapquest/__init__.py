"""
SnapQuest - Photo-based location discovery game backend.

A user photographs a landmark, a vision model identifies it, and the
result feeds a per-user game progress record that survives across
devices, network failures and the anonymous-to-authenticated switch.

The package provides:
- Detection pipeline (classifier -> parser -> geocoder)
- Local cache store for offline-capable progress
- Remote progress store client and server-side repository
- Sync engine reconciling the two
- REST API for the mobile/web client
"""

__version__ = "0.1.0"
