"""Templates for files and libvirt objects created by preflight fixes."""

from .loader import TemplateLoader, get_template_loader

__all__ = ["TemplateLoader", "get_template_loader"]
