"""
URL configuration for the realty back-office.
"""
from django.contrib import admin
from django.urls import path, include
from django.conf import settings
from django.conf.urls.static import static
from django.contrib.auth import views as auth_views

urlpatterns = [
    path('admin/', admin.site.urls),

    # Authentication
    path('login/', auth_views.LoginView.as_view(template_name='auth/login.html'), name='login'),
    path('logout/', auth_views.LogoutView.as_view(), name='logout'),

    # Apps
    path('', include('apps.core.urls')),
    path('settings/', include('apps.settings_app.urls')),
    path('projects/', include('apps.projects.urls')),
    path('customers/', include('apps.crm.urls')),
    path('units/', include('apps.property.urls')),
    path('sales/', include('apps.sales.urls')),
    path('finance/', include('apps.finance.urls')),
    path('documents/', include('apps.documents.urls')),
    path('notifications/', include('apps.notifications.urls')),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
