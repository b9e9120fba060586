from django.urls import path
from . import views

app_name = 'documents'

urlpatterns = [
    path('upload/<str:kind>/<int:pk>/', views.document_upload, name='document_upload'),
    path('<int:pk>/link/', views.document_link, name='document_link'),
    path('<int:pk>/delete/', views.document_delete, name='document_delete'),
    path('download/<str:token>/', views.document_download, name='document_download'),
]
