from django.urls import path
from . import views

app_name = 'sales'

urlpatterns = [
    # Bookings
    path('bookings/', views.BookingListView.as_view(), name='booking_list'),
    path('bookings/archive/', views.BookingListView.as_view(archived=True), name='booking_archive'),
    path('bookings/create/', views.BookingCreateView.as_view(), name='booking_create'),
    path('bookings/<int:pk>/', views.BookingDetailView.as_view(), name='booking_detail'),
    path('bookings/<int:pk>/cancel/', views.booking_cancel, name='booking_cancel'),
    path('bookings/<int:pk>/delete/', views.booking_hard_delete, name='booking_hard_delete'),
    path('bookings/<int:pk>/print/', views.booking_statement_print, name='booking_print'),
    path('bookings/<int:pk>/extra-payments/', views.extra_payment_create, name='extra_payment_create'),
    path('bookings/<int:pk>/schedule/', views.schedule_generate, name='schedule_generate'),

    # Payments
    path('payments/', views.PaymentListView.as_view(), name='payment_list'),
    path('payments/create/', views.PaymentCreateView.as_view(), name='payment_create'),
    path('payments/<int:pk>/delete/', views.payment_delete, name='payment_delete'),
    path('payments/<int:pk>/receipt/', views.payment_receipt, name='payment_receipt'),
    path('extra-payments/<int:pk>/delete/', views.extra_payment_delete, name='extra_payment_delete'),
    path('installments/', views.installment_list, name='installment_list'),

    # Unit sales
    path('unit-sales/', views.UnitSaleListView.as_view(), name='unit_sale_list'),
    path('unit-sales/create/', views.UnitSaleCreateView.as_view(), name='unit_sale_create'),
]
