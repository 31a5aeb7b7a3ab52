from django.urls import path
from . import views

app_name = 'transport'

urlpatterns = [
    path('', views.list_transport_offers, name='offer-list'),
    path('<uuid:offer_id>/accept/', views.accept_transport_offer, name='offer-accept'),
    path('<uuid:offer_id>/decline/', views.decline_transport_offer, name='offer-decline'),
    path('<uuid:offer_id>/counter/', views.counter_transport_offer, name='offer-counter'),
]
