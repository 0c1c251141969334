# API Routers
from backoffice.routers import analytics, resources, upload, webhooks

__all__ = ['analytics', 'resources', 'upload', 'webhooks']
