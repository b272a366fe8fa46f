"""
URL configuration for the medboard records service.

Routes the Django admin, the records API and the OpenAPI
documentation (``/swagger/`` and ``/redoc/``).  Unknown paths fall
through to :func:`records.exceptions.not_found`.
"""
from django.contrib import admin
from django.urls import path, include

from rest_framework import permissions
from drf_yasg.views import get_schema_view
from drf_yasg import openapi

api_info = openapi.Info(
    title="Medboard Records API",
    default_version='v1',
    description="Patients, prescriptions, lab reports, dashboard and analytics.",
)

schema_view = get_schema_view(
    api_info,
    public=True,
    permission_classes=(permissions.AllowAny,),
)

urlpatterns = [
    path('admin/', admin.site.urls),
    path('', include('records.routers')),
    path('swagger/', schema_view.with_ui('swagger', cache_timeout=0), name='schema-swagger-ui'),
    path('redoc/', schema_view.with_ui('redoc', cache_timeout=0), name='schema-redoc'),
]

handler404 = 'records.exceptions.not_found'
