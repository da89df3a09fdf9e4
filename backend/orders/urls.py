from django.urls import path
from . import views

app_name = 'orders'

urlpatterns = [
    # Rider APIs
    path('', views.create_order, name='create-order'),
    path('<int:order_id>/', views.get_order, name='order-detail'),
    path('rider/<int:rider_id>/', views.rider_orders, name='rider-orders'),

    # Driver APIs
    path('pending/', views.pending_orders, name='pending-orders'),
    path('<int:order_id>/accept/', views.accept_order, name='accept-order'),
    path('<int:order_id>/status/', views.update_order_status, name='update-status'),
]
