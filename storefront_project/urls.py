# storefront_project/urls.py
from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),

    # Cart, checkout, customer orders and admin order management
    path("api/", include(("api.urls", "api"), namespace="api")),

    # Browsable API login/logout
    path("api-auth/", include("rest_framework.urls")),
]
