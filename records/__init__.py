"""Records application for the medboard service.

This package contains the models, serializers, services, views,
realtime change feed and client-side data hooks for patients,
prescriptions and lab reports.
"""
