from django.contrib import admin
from django.urls import path
from django.conf import settings
from django.conf.urls.static import static

urlpatterns = [
    # The upload pipeline is driven through its service layer; only the admin is routed here.
    path('admin/', admin.site.urls),
]

# This is needed to serve attached assets during development
if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
