"""
URL configuration for the backend project.

Every app exposes its endpoints under /api/v1/.
"""
from django.contrib import admin
from django.urls import path, include

admin.site.site_header = "Manage PME Admin Panel"
admin.site.site_title = "Manage PME Admin Portal"
admin.site.index_title = "Welcome to the Manage PME Admin Portal"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('backend.core.urls')),
    path('api/v1/', include('backend.catalog.urls')),
    path('api/v1/', include('backend.parties.urls')),
    path('api/v1/', include('backend.inventory.urls')),
    path('api/v1/', include('backend.purchasing.urls')),
    path('api/v1/', include('backend.pos.urls')),
    path('api/v1/', include('backend.pricing.urls')),
    path('api/v1/', include('backend.reports.urls')),
]
