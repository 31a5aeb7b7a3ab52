from django.urls import path
from . import views

app_name = 'orders'

urlpatterns = [
    path('<int:order_id>/assign-transporter/', views.assign_transporter, name='assign-transporter'),
    path('<int:order_id>/dispatch/', views.order_dispatch, name='order-dispatch'),
]
