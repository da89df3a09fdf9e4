from django.urls import path
from . import views

app_name = 'realtime'

urlpatterns = [
    path('driver/', views.notify_driver, name='notify-driver'),
    path('rider/', views.notify_rider, name='notify-rider'),
]
