"""
URL mappings for the records API.

Trailing slashes are omitted; ``APPEND_SLASH`` is off so the paths
must be requested exactly as written here.
"""
from django.urls import include, path

from .auth_views import (
    confirm_email_view,
    login_view,
    logout_view,
    refresh_view,
    resend_confirmation_view,
    session_view,
)
from .views import dashboard, health, lab_reports, patients, prescriptions

urlpatterns = [
    # session
    path('api/auth/login', login_view, name='login_view'),
    path('api/auth/logout', logout_view, name='logout_view'),
    path('api/auth/refresh', refresh_view, name='refresh_view'),
    path('api/auth/session', session_view, name='session_view'),
    path('api/auth/resend-confirmation', resend_confirmation_view, name='resend_confirmation_view'),
    path('api/auth/confirm', confirm_email_view, name='confirm_email_view'),

    # records
    path('api/patients', patients.patients, name='patients'),
    path('api/patients/lookup', patients.patient_lookup, name='patient_lookup'),
    path('api/patients/<uuid:pk>', patients.patient_detail, name='patient_detail'),
    path('api/patients/<uuid:pk>/export', patients.patient_export, name='patient_export'),
    path('api/prescriptions', prescriptions.prescriptions, name='prescriptions'),
    path('api/prescriptions/<uuid:pk>/export', prescriptions.prescription_export, name='prescription_export'),
    path('api/lab-reports', lab_reports.lab_reports, name='lab_reports'),
    path('api/lab-reports/<uuid:pk>/export', lab_reports.lab_report_export, name='lab_report_export'),

    # aggregates
    path('api/dashboard', dashboard.dashboard, name='dashboard'),
    path('api/analytics', dashboard.analytics, name='analytics'),

    path('healthz', health.healthz, name='healthz'),
    path('', include('django_prometheus.urls')),
]
