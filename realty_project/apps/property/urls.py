from django.urls import path
from . import views

app_name = 'property'

urlpatterns = [
    path('', views.UnitListView.as_view(), name='unit_list'),
    path('create/', views.UnitCreateView.as_view(), name='unit_create'),
    path('<int:pk>/edit/', views.UnitUpdateView.as_view(), name='unit_edit'),
]
