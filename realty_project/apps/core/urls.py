"""
Core URL configuration.
"""
from django.urls import path
from . import views

urlpatterns = [
    path('', views.dashboard, name='dashboard'),
    path('select-project/', views.select_project, name='select_project'),
]
