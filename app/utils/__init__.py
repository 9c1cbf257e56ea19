"""Request input helpers."""

from app.utils.sanitize import normalize_prefix, sanitize_container_name, sanitize_object_name

__all__ = ["normalize_prefix", "sanitize_container_name", "sanitize_object_name"]
