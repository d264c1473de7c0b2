"""Shift Sync package.

Offline-first shift tracking organized by feature modules (attendance, time_categories,
employees, sync) with a thin Flask controller layer over service/repository layers.
"""
