"""
Multi-Tenant File Service

A FastAPI facade that routes file storage operations to the S3 or Azure
Blob Storage account configured for each tenant environment.
"""

__version__ = "1.0.0"
