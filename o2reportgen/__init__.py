"""Dashboard report service: renders dashboards in headless Chrome to PDF and e-mails them."""

__version__ = "0.11.0"